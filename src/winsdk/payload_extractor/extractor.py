"""
Payload extraction.

Dispatches each cached payload to a format-specific strategy and merges the
results into a single output tree.
"""

import logging
import os
import pathlib
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from winsdk.manifest_models import Package, PackageType, Payload
from winsdk.payload_downloader import PayloadCache, ProgressReporter
from winsdk.payload_extractor.tools import InstallerTools, SubprocessInstallerTools
from winsdk.winsdk_config import DEFAULT_PRODUCT_ROOTS, CacheLayout
from winsdk.winsdk_exceptions import ExtractionError
from winsdk.winsdk_logger import WinSdkLogger
from winsdk.winsdk_utils import FileUtils

# Directories an installer may nest the product subtrees under
INSTALL_PREFIXES = ("", "Program Files", "Program Files (x86)")

VSIX_CONTENTS_DIR = "Contents"

# Files shipped alongside installers that are never extracted on their own
PASS_THROUGH_SUFFIXES = frozenset({".cab", ".exe"})


class ExtractionKind(str, Enum):
    """Extraction strategy of a payload."""

    MSI = "msi"
    VSIX = "vsix"
    NONE = "none"


def classify(payload: Payload, package_type: Optional[PackageType] = None) -> ExtractionKind:
    """
    Pick the extraction strategy of a payload.

    The file name suffix always wins. A payload whose suffix is not recognized
    falls back to the package type. Cabinet files and bare executables are
    recognized as pass-through, so the cabinets shipped next to an MSI are not
    mistaken for installers.
    """
    suffix = pathlib.PurePosixPath(payload.file_name.replace("\\", "/")).suffix.lower()
    if suffix == ".msi":
        return ExtractionKind.MSI
    if suffix == ".vsix":
        return ExtractionKind.VSIX
    if suffix not in PASS_THROUGH_SUFFIXES:
        if package_type == PackageType.MSI:
            return ExtractionKind.MSI
        if package_type == PackageType.VSIX:
            return ExtractionKind.VSIX
    return ExtractionKind.NONE


class PayloadExtractor:
    """
    Extracts the payloads of resolved packages into one output directory.

    Each payload is expanded into its own scratch directory. Afterwards the
    product subtrees found there ("Windows Kits" and "VC" by default) are merged
    into the output root, one lock per subtree.
    """

    def __init__(
        self,
        logger: WinSdkLogger,
        tools: Optional[InstallerTools] = None,
        product_roots: Sequence[str] = DEFAULT_PRODUCT_ROOTS,
        promote_all: bool = False,
        max_workers: int = 4,
        progress: Optional[ProgressReporter] = None,
        scratch_dir: Optional[str] = None,
        verify: bool = True,
    ):
        """
        Args:
            logger: Logger for progress and error messages
            tools: External MSI/VSIX tools, msiextract and unzip if omitted
            product_roots: Subtrees promoted from the scratch area into the output
            promote_all: Merge the whole scratch area instead of the product subtrees
            max_workers: Maximum number of payloads extracted at the same time
            progress: Byte progress reporter
            scratch_dir: Parent of the temporary scratch area, system temp if omitted
            verify: Re-hash cached payloads through PayloadCache.lookup instead of
                trusting the cache paths. Extraction never downloads either way
        """
        self.logger = logger
        self.tools = tools if tools is not None else SubprocessInstallerTools()
        self.product_roots = list(product_roots)
        self.promote_all = promote_all
        self.max_workers = max_workers
        self.progress = progress if progress is not None else ProgressReporter()
        self.scratch_dir = scratch_dir
        self.verify = verify
        self._root_locks: Dict[str, threading.Lock] = {}
        self._root_locks_guard = threading.Lock()

    def extract(self, packages: Iterable[Package], cache: PayloadCache, output_root: str) -> None:
        """
        Wipe output_root and extract every payload of packages into it.

        Raises:
            ExtractionError: if a payload is not cached, or an external tool is missing or fails
            PayloadIntegrityError: if a cached payload fails verification
        """
        packages = list(packages)
        output = pathlib.Path(output_root).resolve()
        cache_root = cache.cache_root.resolve()
        if output == cache_root or output in cache_root.parents:
            raise ExtractionError(f"Refusing to wipe {output}: it contains the payload cache {cache_root}")

        FileUtils.reset_directory(output)

        jobs: List[Tuple[Package, Payload, ExtractionKind]] = []
        for package in packages:
            for payload in package.payloads:
                kind = classify(payload, package.package_type)
                if kind == ExtractionKind.NONE:
                    self.logger.log(
                        f"No extraction for {package.id}: {payload.file_name}", logging.DEBUG
                    )
                    continue
                jobs.append((package, payload, kind))

        self.logger.log(
            f"Extracting {len(jobs)} payloads from {len(packages)} packages into {output}",
            logging.INFO,
        )
        self.progress.start(sum(payload.size for _, payload, _ in jobs), "extract")
        try:
            with tempfile.TemporaryDirectory(prefix="winsdk-", dir=self.scratch_dir) as scratch:
                scratch_root = pathlib.Path(scratch)
                sources = self._stage_sources(packages, jobs, cache, scratch_root / "staging")

                with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                    futures = [
                        executor.submit(
                            self._extract_payload,
                            package,
                            payload,
                            kind,
                            sources[(package.id, payload.file_name)],
                            scratch_root / "payloads" / str(index),
                            output,
                        )
                        for index, (package, payload, kind) in enumerate(jobs)
                    ]
                    try:
                        for future in as_completed(futures):
                            future.result()
                    except Exception as e:
                        self.logger.log(f"Aborting extraction: {e}", logging.ERROR)
                        for future in futures:
                            future.cancel()
                        raise
        finally:
            self.progress.finish()

        self.logger.log(f"Extraction into {output} complete", logging.INFO)

    def _stage_sources(
        self,
        packages: List[Package],
        jobs: List[Tuple[Package, Payload, ExtractionKind]],
        cache: PayloadCache,
        staging_root: pathlib.Path,
    ) -> Dict[Tuple[str, str], pathlib.Path]:
        """
        Locate every payload of the packages that have something to extract.

        An MSI looks for its cabinet files next to itself, so with the digest cache
        layout the payloads of a package are linked into a staging directory under
        their manifest file names first.
        """
        wanted = {package.id for package, _, _ in jobs}
        sources: Dict[Tuple[str, str], pathlib.Path] = {}
        for package in packages:
            if package.id not in wanted:
                continue
            for payload in package.payloads:
                key = (package.id, payload.file_name)
                if key in sources:
                    continue
                if self.verify:
                    cached = cache.lookup(package.id, payload)
                else:
                    cached = cache.path_for(package.id, payload)
                    if not cached.exists():
                        cached = None
                if cached is None:
                    raise ExtractionError(f"Payload {payload.file_name} of {package.id} is not cached")

                if cache.layout == CacheLayout.PACKAGE:
                    sources[key] = cached
                    continue

                package_dir = FileUtils.normalize_path_component(package.id)
                staged = staging_root / package_dir / pathlib.Path(*payload.relative_path.parts)
                staged.parent.mkdir(parents=True, exist_ok=True)
                try:
                    os.symlink(cached.resolve(), staged)
                except OSError:
                    shutil.copyfile(cached, staged)
                sources[key] = staged
        return sources

    def _extract_payload(
        self,
        package: Package,
        payload: Payload,
        kind: ExtractionKind,
        source: pathlib.Path,
        scratch: pathlib.Path,
        output: pathlib.Path,
    ) -> None:
        scratch.mkdir(parents=True)
        self.logger.log(f"Extracting {package.id}: {payload.file_name} ({kind.value})", logging.DEBUG)

        if kind == ExtractionKind.MSI:
            self.tools.decompress_installer(str(source), str(scratch))
            extracted = scratch
        else:
            expanded = scratch / "archive"
            expanded.mkdir()
            self.tools.expand_archive(str(source), str(expanded))
            # Only Contents/ is installed; the manifest and signature at the zip root are dropped
            extracted = expanded / VSIX_CONTENTS_DIR
            if not extracted.is_dir():
                self.logger.log(f"{payload.file_name} has no {VSIX_CONTENTS_DIR} directory", logging.DEBUG)
                extracted = None

        if extracted is not None:
            self._promote(extracted, output)
        shutil.rmtree(scratch, ignore_errors=True)
        self.progress.advance(payload.size)

    def _promote(self, extracted: pathlib.Path, output: pathlib.Path) -> None:
        """
        Merge the product subtrees of one extracted payload into the output root.
        """
        if self.promote_all:
            with self._lock_for(""):
                FileUtils.merge_tree(extracted, output)
            return

        for root in self.product_roots:
            for prefix in INSTALL_PREFIXES:
                candidate = extracted / prefix / root if prefix else extracted / root
                if candidate.is_dir():
                    with self._lock_for(root):
                        FileUtils.merge_tree(candidate, output / root)

    def _lock_for(self, root: str) -> threading.Lock:
        with self._root_locks_guard:
            return self._root_locks.setdefault(root, threading.Lock())
