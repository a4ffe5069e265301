"""
This module contains the exceptions raised by winsdk.
"""

from typing import Optional


class WinSdkException(Exception):
    """
    Base class of all exceptions raised by winsdk.
    """

    def __init__(self, message: str):
        """
        Initializes the exception with the given message.
        """
        super().__init__(message)


class ConfigurationError(WinSdkException):
    """Raised when a winsdk.toml file or config dictionary is invalid."""


class ManifestParseError(WinSdkException):
    """Raised when a channel, manifest or package list fails structural validation."""


class UnsafePayloadPathError(WinSdkException):
    """Raised when a payload file name would escape the directory it is placed in."""


class PayloadTransportError(WinSdkException):
    """
    Raised when a payload (or the manifest itself) could not be fetched.
    """

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class PayloadIntegrityError(WinSdkException):
    """
    Raised when the SHA-256 digest of a payload does not match the manifest.

    Covers both freshly downloaded bytes and files already sitting in the cache.
    A cached file that fails verification is treated as corruption and is never
    silently re-downloaded.
    """

    def __init__(
        self,
        url: str,
        expected: str,
        actual: str,
        path: Optional[str] = None,
        cached: bool = False,
    ):
        self.url = url
        self.expected = expected
        self.actual = actual
        self.path = path
        self.cached = cached
        origin = "cached payload" if cached else "downloaded payload"
        location = f" at {path}" if path else ""
        super().__init__(
            f"Hash did not match for {origin} {url}{location}: "
            f"expected {expected}, got {actual}"
        )


class ExtractionError(WinSdkException):
    """Raised when an external extraction tool is missing or fails on a payload."""
