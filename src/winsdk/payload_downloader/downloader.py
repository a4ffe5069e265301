"""
Payload cache implementation.

Handles downloading payloads into a content-verified on-disk cache.
"""

import hashlib
import logging
import os
import pathlib
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from winsdk.manifest_models import Package, Payload
from winsdk.winsdk_config import CacheLayout
from winsdk.winsdk_exceptions import PayloadIntegrityError, PayloadTransportError
from winsdk.winsdk_logger import WinSdkLogger
from winsdk.winsdk_utils import DEFAULT_CHUNK_SIZE, FileUtils
from winsdk.payload_downloader.progress import ProgressReporter


class FetchStatus(str, Enum):
    """How a payload came to be in the cache."""

    CACHED = "cached"
    DOWNLOADED = "downloaded"


@dataclass(frozen=True)
class FetchedPayload:
    """A verified payload on disk."""

    package_id: str
    payload: Payload
    path: pathlib.Path
    status: FetchStatus


def make_http_session(retries: int = 0) -> requests.Session:
    """
    Create the session used for manifest and payload downloads.

    Args:
        retries: Per-request retries for connection errors and 429/5xx responses.
            Digest mismatches are never retried.
    """
    session = requests.Session()
    if retries > 0:
        retry = Retry(
            total=retries,
            connect=retries,
            read=retries,
            status_forcelist=(429, 500, 502, 503, 504),
            backoff_factor=0.5,
            allowed_methods=("GET",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
    return session


class PayloadCache:
    """
    Content-verified, resumable-by-presence payload cache.

    A payload already on disk is re-hashed before it is trusted; a payload that is
    missing is streamed from its URL to disk while being hashed. Either way the
    returned path holds bytes whose SHA-256 equals the manifest digest.
    """

    def __init__(
        self,
        cache_root: str,
        logger: WinSdkLogger,
        session: Optional[requests.Session] = None,
        layout: CacheLayout = CacheLayout.PACKAGE,
        max_workers: int = 8,
        progress: Optional[ProgressReporter] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = 60.0,
    ):
        """
        Initialize the payload cache.

        Args:
            cache_root: Directory holding cached payloads, created on demand
            logger: Logger for progress and error messages
            session: HTTP session, a plain requests.Session if omitted
            layout: Cache directory layout
            max_workers: Maximum number of concurrent downloads in fetch_all
            progress: Byte progress reporter
            chunk_size: Streaming chunk size in bytes
            timeout: Connect/read timeout for each request in seconds
        """
        self.cache_root = pathlib.Path(cache_root)
        self.logger = logger
        self.session = session if session is not None else make_http_session()
        self.layout = layout
        self.max_workers = max_workers
        self.progress = progress if progress is not None else ProgressReporter()
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._stats_lock = threading.Lock()
        self._stats = {"cached": 0, "downloaded": 0, "bytes_downloaded": 0}

    def path_for(self, package_id: str, payload: Payload) -> pathlib.Path:
        """
        Get the cache location of a payload. Depends only on the payload identity.
        """
        if self.layout == CacheLayout.DIGEST:
            return self.cache_root / payload.sha256
        package_dir = FileUtils.normalize_path_component(package_id)
        return self.cache_root / package_dir / pathlib.Path(*payload.relative_path.parts)

    def fetch(self, package_id: str, payload: Payload) -> pathlib.Path:
        """
        Return a verified local copy of the payload, downloading it on a cache miss.

        Raises:
            PayloadIntegrityError: if the cached or downloaded bytes do not match the digest
            PayloadTransportError: if the download fails
        """
        cached = self.lookup(package_id, payload)
        if cached is not None:
            return cached

        path = self.path_for(package_id, payload)
        self._download(path, payload)
        return path

    def lookup(self, package_id: str, payload: Payload) -> Optional[pathlib.Path]:
        """
        Return the verified cached copy of the payload, or None on a cache miss.
        Never touches the network.

        Raises:
            PayloadIntegrityError: if the cached bytes do not match the digest
        """
        path = self.path_for(package_id, payload)
        if not path.exists():
            return None
        self._verify_cached(path, payload)
        return path

    def fetch_result(self, package_id: str, payload: Payload) -> FetchedPayload:
        path = self.path_for(package_id, payload)
        status = FetchStatus.CACHED if path.exists() else FetchStatus.DOWNLOADED
        return FetchedPayload(package_id, payload, self.fetch(package_id, payload), status)

    def fetch_all(self, packages: Iterable[Package]) -> List[FetchedPayload]:
        """
        Fetch every payload of every package concurrently.

        The first failure cancels the downloads that have not started yet and is
        re-raised; there is no partial-success result.

        Returns:
            One FetchedPayload per distinct cache path
        """
        tasks: Dict[pathlib.Path, Tuple[str, Payload]] = {}
        for package in packages:
            for payload in package.payloads:
                tasks.setdefault(self.path_for(package.id, payload), (package.id, payload))

        total_size = sum(payload.size for _, payload in tasks.values())
        self.logger.log(
            f"Fetching {len(tasks)} payloads ({total_size} bytes) into {self.cache_root}",
            logging.INFO,
        )
        self.cache_root.mkdir(parents=True, exist_ok=True)

        results: List[FetchedPayload] = []
        self.progress.start(total_size, "download")
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self.fetch_result, package_id, payload)
                    for package_id, payload in tasks.values()
                ]
                try:
                    for future in as_completed(futures):
                        results.append(future.result())
                except Exception as e:
                    self.logger.log(f"Aborting fetch: {e}", logging.ERROR)
                    for future in futures:
                        future.cancel()
                    raise
        finally:
            self.progress.finish()

        summary = self.get_fetch_summary()
        self.logger.log(
            f"Fetch summary: {summary['cached']} cached, {summary['downloaded']} downloaded, "
            f"{summary['bytes_downloaded']} bytes transferred",
            logging.INFO,
        )
        return results

    def get_fetch_summary(self) -> Dict[str, int]:
        """
        Get counts of cache hits, downloads and downloaded bytes since this cache was created.
        """
        with self._stats_lock:
            return dict(self._stats)

    def _record(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] += amount

    def _verify_cached(self, path: pathlib.Path, payload: Payload) -> None:
        actual = FileUtils.sha256_file(path, self.chunk_size, self.progress.advance)
        if actual != payload.sha256:
            self.logger.log(f"Cached payload {path} is corrupt", logging.ERROR)
            raise PayloadIntegrityError(payload.url, payload.sha256, actual, str(path), cached=True)
        self.logger.log(f"Using cached {path}", logging.DEBUG)
        self._record("cached")

    def _download(self, path: pathlib.Path, payload: Payload) -> None:
        self.logger.log(f"Downloading {payload.url} to {path}", logging.DEBUG)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Stream into a sibling temp file so an interrupted download never looks like a cache hit
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".part")
        temp_path = pathlib.Path(temp_name)
        try:
            sha256 = hashlib.sha256()
            transferred = 0
            with os.fdopen(fd, "wb") as f:
                try:
                    with self.session.get(payload.url, stream=True, timeout=self.timeout) as response:
                        response.raise_for_status()
                        for chunk in response.iter_content(chunk_size=self.chunk_size):
                            if not chunk:
                                continue
                            sha256.update(chunk)
                            f.write(chunk)
                            transferred += len(chunk)
                            self.progress.advance(len(chunk))
                except requests.RequestException as e:
                    self.logger.log(f"Failed to download {payload.url}: {e}", logging.ERROR)
                    raise PayloadTransportError(payload.url, str(e)) from e

            actual = sha256.hexdigest()
            if actual != payload.sha256:
                self.logger.log(f"Downloaded payload {payload.url} is corrupt", logging.ERROR)
                raise PayloadIntegrityError(payload.url, payload.sha256, actual, str(path))

            os.replace(temp_path, path)
        finally:
            if temp_path.exists():
                temp_path.unlink()

        self._record("downloaded")
        self._record("bytes_downloaded", transferred)
