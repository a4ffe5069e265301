"""
Runs the winsdk stages end to end: manifest, resolution, fetch, extraction and
case normalization.
"""

import logging
from typing import Callable, List, Optional

import requests

from winsdk.case_normalizer import CaseNormalizer, NormalizationReport, make_alias_strategy
from winsdk.manifest_models import Manifest, Package
from winsdk.package_resolver import PackageResolver
from winsdk.payload_downloader import (
    FetchedPayload,
    ManifestSource,
    PayloadCache,
    ProgressReporter,
    make_http_session,
)
from winsdk.payload_extractor import InstallerTools, PayloadExtractor
from winsdk.winsdk_config import WinSdkConfig
from winsdk.winsdk_logger import WinSdkLogger


class SdkPipeline:
    """
    Assembles an SDK tree from a WinSdkConfig.

    Each stage consumes only the output of the previous one, so the stages can
    also be driven one at a time (see the CLI subcommands).
    """

    def __init__(
        self,
        config: WinSdkConfig,
        logger: WinSdkLogger,
        session: Optional[requests.Session] = None,
        tools: Optional[InstallerTools] = None,
        progress_factory: Optional[Callable[[], ProgressReporter]] = None,
    ):
        """
        Args:
            config: Run configuration
            logger: Logger shared by all stages
            session: HTTP session, built from config.http_retries if omitted
            tools: External MSI/VSIX tools for the extractor
            progress_factory: Creates one progress reporter per stage
        """
        config.validate()
        self.config = config
        self.logger = logger
        self.session = session if session is not None else make_http_session(config.http_retries)
        self.tools = tools
        self.progress_factory = progress_factory or ProgressReporter

    def load_manifest(self) -> Manifest:
        """
        Load the manifest from manifest_path, manifest_url or the channel of major_version,
        in that order of preference.
        """
        self.config.require_manifest_source()
        if self.config.manifest_path:
            self.logger.log(f"Loading manifest {self.config.manifest_path}", logging.INFO)
            return Manifest.from_file(self.config.manifest_path)

        source = ManifestSource(self.session, self.logger, self.config.timeout)
        if self.config.manifest_url:
            return source.fetch_manifest(self.config.manifest_url)
        return source.fetch_manifest(source.fetch_manifest_payload(self.config.major_version))

    def resolve(self, manifest: Manifest) -> List[Package]:
        return PackageResolver(manifest, self.logger).resolve(self.config.packages)

    def make_cache(self) -> PayloadCache:
        return PayloadCache(
            self.config.cache_dir,
            self.logger,
            session=self.session,
            layout=self.config.cache_layout,
            max_workers=self.config.max_workers,
            progress=self.progress_factory(),
            timeout=self.config.timeout,
        )

    def fetch(self, packages: List[Package], cache: Optional[PayloadCache] = None) -> List[FetchedPayload]:
        return (cache or self.make_cache()).fetch_all(packages)

    def extract(
        self,
        packages: List[Package],
        cache: Optional[PayloadCache] = None,
        verify: bool = True,
    ) -> None:
        extractor = PayloadExtractor(
            self.logger,
            tools=self.tools,
            product_roots=self.config.product_roots,
            promote_all=self.config.promote_all,
            max_workers=self.config.max_workers,
            progress=self.progress_factory(),
            verify=verify,
        )
        extractor.extract(packages, cache or self.make_cache(), self.config.output_dir)

    def normalize(self) -> NormalizationReport:
        normalizer = CaseNormalizer(
            self.logger,
            mode=self.config.case_mode,
            alias=make_alias_strategy(self.config.alias),
        )
        return normalizer.normalize(self.config.output_dir)

    def run(self) -> NormalizationReport:
        """
        Run every stage. Any stage failure aborts the run.
        """
        manifest = self.load_manifest()
        packages = self.resolve(manifest)
        cache = self.make_cache()
        self.fetch(packages, cache)
        # fetch_all has just verified every payload
        self.extract(packages, cache, verify=False)
        report = self.normalize()
        self.logger.log(f"SDK assembled in {self.config.output_dir}", logging.INFO)
        return report
