"""
Progress reporting for the fetch and extraction stages.

Reporters are called from worker threads and must be thread-safe. They are
advisory only: nothing in winsdk reads them back to make decisions.
"""

import threading
from typing import Optional

from tqdm import tqdm


class ProgressReporter:
    """
    Receives byte counts from a stage. The base class ignores everything.
    """

    def start(self, total: int, description: str = "") -> None:
        pass

    def advance(self, amount: int) -> None:
        pass

    def finish(self) -> None:
        pass


NullProgress = ProgressReporter


class ByteCounterProgress(ProgressReporter):
    """
    Accumulates the reported byte counts.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total = 0
        self.completed = 0
        self.finished = False

    def start(self, total: int, description: str = "") -> None:
        with self._lock:
            self.total = total
            self.completed = 0
            self.finished = False

    def advance(self, amount: int) -> None:
        with self._lock:
            self.completed += amount

    def finish(self) -> None:
        with self._lock:
            self.finished = True


class TqdmProgress(ProgressReporter):
    """
    Renders a byte progress bar on stderr with tqdm.
    """

    def __init__(self, disable: bool = False) -> None:
        self._lock = threading.Lock()
        self._disable = disable
        self._bar: Optional[tqdm] = None

    def start(self, total: int, description: str = "") -> None:
        with self._lock:
            if self._bar is not None:
                self._bar.close()
            self._bar = tqdm(
                total=total,
                desc=description or None,
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                disable=self._disable,
            )

    def advance(self, amount: int) -> None:
        with self._lock:
            if self._bar is not None:
                self._bar.update(amount)

    def finish(self) -> None:
        with self._lock:
            if self._bar is not None:
                self._bar.close()
                self._bar = None
