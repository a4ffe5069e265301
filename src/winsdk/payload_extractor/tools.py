"""
External extraction tools.

winsdk does not decompress MSI installers or VSIX archives itself; it calls
tools that do. The tools are injected so the extraction logic can be tested
against fakes.
"""

import shutil
import subprocess
from typing import List

from winsdk.winsdk_exceptions import ExtractionError


class InstallerTools:
    """
    Capability interface used by the extractor.
    """

    def decompress_installer(self, msi_path: str, destination: str) -> None:
        """Expand the files of an MSI installer into destination."""
        raise NotImplementedError

    def expand_archive(self, archive_path: str, destination: str) -> None:
        """Expand a zip container (VSIX) into destination."""
        raise NotImplementedError


class SubprocessInstallerTools(InstallerTools):
    """
    Runs msiextract (from msitools) and unzip.
    """

    def __init__(self, msiextract: str = "msiextract", unzip: str = "unzip"):
        self.msiextract = msiextract
        self.unzip = unzip

    def decompress_installer(self, msi_path: str, destination: str) -> None:
        # msiextract lists every extracted file on stdout
        self._run([self.msiextract, "-C", destination, msi_path], msi_path)

    def expand_archive(self, archive_path: str, destination: str) -> None:
        self._run([self.unzip, "-qq", "-o", archive_path, "-d", destination], archive_path)

    @staticmethod
    def _run(cmd: List[str], source: str) -> None:
        if shutil.which(cmd[0]) is None:
            raise ExtractionError(f"{cmd[0]} is required to extract {source} but was not found on PATH")
        result = subprocess.run(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        if result.returncode != 0:
            stderr = result.stderr.strip().splitlines()[-5:]
            raise ExtractionError(
                f"{cmd[0]} failed on {source} with exit code {result.returncode}: {' '.join(stderr)}"
            )
