"""
Payload downloader for winsdk.

This package handles:
1. Fetching the release channel and manifest documents
2. Downloading payloads into the content-verified cache
3. Verifying cached payloads before they are reused
4. Reporting byte progress
"""

from .downloader import FetchedPayload, FetchStatus, PayloadCache, make_http_session
from .manifest_source import ManifestSource, fetch_manifest_url
from .progress import ByteCounterProgress, NullProgress, ProgressReporter, TqdmProgress

__all__ = [
    "PayloadCache",
    "FetchedPayload",
    "FetchStatus",
    "make_http_session",
    "ManifestSource",
    "fetch_manifest_url",
    "ProgressReporter",
    "NullProgress",
    "ByteCounterProgress",
    "TqdmProgress",
]
