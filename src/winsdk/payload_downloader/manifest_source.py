"""
Fetching the release channel and the component manifest it points at.
"""

import hashlib
import json
import logging
import pathlib
from typing import Any, Optional, Tuple, Union

import requests

from winsdk.manifest_models import Channel, Manifest, Payload
from winsdk.winsdk_exceptions import ManifestParseError, PayloadIntegrityError, PayloadTransportError
from winsdk.winsdk_logger import WinSdkLogger
from winsdk.winsdk_settings import WinSdkSettings


class ManifestSource:
    """
    Downloads the channel and manifest documents over HTTP(S).
    """

    def __init__(self, session: requests.Session, logger: WinSdkLogger, timeout: float = 60.0):
        self.session = session
        self.logger = logger
        self.timeout = timeout

    def fetch_channel(self, major_version: str) -> Channel:
        """
        Download the release channel of a Visual Studio major version (e.g. "17").
        """
        url = WinSdkSettings.get_channel_url(major_version)
        self.logger.log(f"Fetching channel {url}", logging.INFO)
        return Channel.from_dict(self._get_json(url)[0])

    def fetch_manifest_payload(self, major_version: str) -> Payload:
        """
        Get the payload (URL and digest) of the manifest for a major version.
        """
        payload = self.fetch_channel(major_version).manifest_payload()
        self.logger.log(f"Manifest URL {payload.url} SHA256 {payload.sha256}", logging.INFO)
        return payload

    def fetch_manifest(self, source: Union[str, Payload]) -> Manifest:
        """
        Download and validate a manifest.

        Args:
            source: Manifest URL, or a channel payload whose digest is verified
        """
        return Manifest.from_dict(self._fetch_manifest_document(source))

    def download_manifest(self, source: Union[str, Payload], output_path: str) -> Manifest:
        """
        Download a manifest, validate it, and write it to output_path as pretty-printed JSON.
        """
        document = self._fetch_manifest_document(source)
        manifest = Manifest.from_dict(document)
        path = pathlib.Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        self.logger.log(
            f"Wrote manifest with {len(manifest.packages)} packages to {path}", logging.INFO
        )
        return manifest

    def _fetch_manifest_document(self, source: Union[str, Payload]) -> Any:
        url = source.url if isinstance(source, Payload) else source
        self.logger.log(f"Fetching manifest {url}", logging.INFO)
        document, content = self._get_json(url)
        if isinstance(source, Payload):
            actual = hashlib.sha256(content).hexdigest()
            if actual != source.sha256:
                raise PayloadIntegrityError(url, source.sha256, actual)
        return document

    def _get_json(self, url: str) -> Tuple[Any, bytes]:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise PayloadTransportError(url, str(e)) from e
        content = response.content
        try:
            return json.loads(content), content
        except ValueError as e:
            raise ManifestParseError(f"{url} did not return JSON: {e}") from e


def fetch_manifest_url(
    major_version: str,
    session: Optional[requests.Session] = None,
    logger: Optional[WinSdkLogger] = None,
) -> Payload:
    """
    Look up the manifest payload advertised by the channel of a major version.
    """
    source = ManifestSource(session or requests.Session(), logger or WinSdkLogger())
    return source.fetch_manifest_payload(major_version)
