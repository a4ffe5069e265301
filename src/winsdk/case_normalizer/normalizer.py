"""
Case normalization of an extracted SDK tree.

Headers and import libraries are shipped for a case-insensitive filesystem and
are referenced with casings that differ from their names on disk. This pass
makes every referenced name resolvable on a case-sensitive filesystem without
touching the text of any file.
"""

import logging
import os
import pathlib
import re
import shutil
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from winsdk.winsdk_config import AliasKind, CaseMode
from winsdk.winsdk_logger import WinSdkLogger

HEADER_EXTENSIONS = frozenset({".h", ".hh", ".hpp", ".hxx", ".inl"})
IMPORT_LIBRARY_EXTENSIONS = frozenset({".lib"})

INCLUDE_PATTERN = re.compile(rb'#[ \t]*include[ \t]*(["<])([^">\r\n]+)([">])')


class AliasStrategy:
    """
    Creates a file named `alias` that resolves to the contents of `target`.
    """

    def create(self, target: pathlib.Path, alias: pathlib.Path) -> None:
        raise NotImplementedError


class CopyAlias(AliasStrategy):
    """Physical copy of the target."""

    def create(self, target: pathlib.Path, alias: pathlib.Path) -> None:
        shutil.copy2(target, alias)


class SymlinkAlias(AliasStrategy):
    """
    Relative symbolic link to the target, falling back to a copy where the
    platform or filesystem refuses symlinks.
    """

    def __init__(self) -> None:
        self._fallback = CopyAlias()

    def create(self, target: pathlib.Path, alias: pathlib.Path) -> None:
        try:
            os.symlink(os.path.relpath(target, alias.parent), alias)
        except (OSError, NotImplementedError):
            self._fallback.create(target, alias)


def make_alias_strategy(kind: AliasKind) -> AliasStrategy:
    if kind == AliasKind.COPY:
        return CopyAlias()
    return SymlinkAlias()


@dataclass
class NormalizationReport:
    """What a normalization run changed."""

    renamed: List[Tuple[str, str]] = field(default_factory=list)
    aliased: List[Tuple[str, str]] = field(default_factory=list)
    created: List[Tuple[str, str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.renamed or self.aliased or self.created)


class CaseNormalizer:
    """
    Two-pass case repair.

    1. Canonicalize: header and import library names that are not all-lowercase
       are renamed to lowercase (CaseMode.RENAME) or given a lowercase alias
       (CaseMode.ALIAS, which keeps the original name addressable).
    2. Repair: the include directives of every header are scanned, and for each
       referenced file name that exists on disk under a different casing, an alias
       with the exact referenced name is created next to the file that was found.

    Existing files are never overwritten, so running the pass again is a no-op.
    Unreadable files and undecodable names are reported as warnings.
    """

    def __init__(
        self,
        logger: WinSdkLogger,
        mode: CaseMode = CaseMode.RENAME,
        alias: Optional[AliasStrategy] = None,
    ):
        self.logger = logger
        self.mode = mode
        self.alias = alias if alias is not None else SymlinkAlias()

    def normalize(self, root: str) -> NormalizationReport:
        root_path = pathlib.Path(root)
        report = NormalizationReport()

        self.canonicalize(root_path, report)
        index = self.build_index(root_path, report)
        referenced = self.scan_includes(index, report)
        self.repair(index, referenced, report)

        self.logger.log(
            f"Case normalization of {root}: {len(report.renamed)} renamed, "
            f"{len(report.aliased)} lowercase aliases, {len(report.created)} include aliases, "
            f"{len(report.warnings)} warnings",
            logging.INFO,
        )
        return report

    def canonicalize(self, root: pathlib.Path, report: NormalizationReport) -> None:
        """
        Phase 1: make the lowercase name of every header and import library resolvable.
        """
        extensions = HEADER_EXTENSIONS | IMPORT_LIBRARY_EXTENSIONS
        for path in list(self._walk_files(root, extensions, report)):
            name = path.name
            lowercase_name = name.lower()
            if name == lowercase_name:
                continue

            target = path.with_name(lowercase_name)
            if os.path.lexists(target):
                # Already resolvable by its lowercase name
                continue

            if self.mode == CaseMode.RENAME:
                os.rename(path, target)
                report.renamed.append((str(path), str(target)))
            else:
                self.alias.create(path, target)
                report.aliased.append((str(path), str(target)))

    def build_index(self, root: pathlib.Path, report: NormalizationReport) -> Dict[str, Set[pathlib.Path]]:
        """
        Map lowercased header names to every header on disk with that name.
        """
        index: Dict[str, Set[pathlib.Path]] = {}
        for path in self._walk_files(root, HEADER_EXTENSIONS, report):
            index.setdefault(path.name.lower(), set()).add(path)
        return index

    def scan_includes(self, index: Dict[str, Set[pathlib.Path]], report: NormalizationReport) -> Set[str]:
        """
        Collect the base names of all include directive targets in the indexed headers.
        """
        referenced: Set[str] = set()
        for paths in index.values():
            for path in paths:
                if path.is_symlink():
                    continue
                try:
                    content = path.read_bytes()
                except OSError as e:
                    self._warn(report, f"Cannot read {path}: {e}")
                    continue

                for match in INCLUDE_PATTERN.finditer(content):
                    try:
                        target = match.group(2).decode("utf-8").strip()
                    except UnicodeDecodeError:
                        self._warn(report, f"Undecodable include target in {path}: {match.group(2)!r}")
                        continue
                    name = target.replace("\\", "/").rsplit("/", 1)[-1]
                    if name:
                        referenced.add(name)
        return referenced

    def repair(
        self,
        index: Dict[str, Set[pathlib.Path]],
        referenced: Set[str],
        report: NormalizationReport,
    ) -> None:
        """
        Phase 2: create an alias named exactly as referenced next to each header
        that carries the same name under a different casing.
        """
        for name in sorted(referenced):
            candidates = index.get(name.lower())
            if not candidates:
                continue

            by_directory: Dict[pathlib.Path, List[pathlib.Path]] = {}
            for path in candidates:
                by_directory.setdefault(path.parent, []).append(path)

            for directory, paths in sorted(by_directory.items()):
                alias = directory / name
                if os.path.lexists(alias):
                    continue
                paths = sorted(p for p in paths if not p.is_symlink()) or sorted(paths)
                if len(paths) > 1:
                    self._warn(
                        report,
                        f"Ambiguous casing for {name} in {directory}: "
                        f"{', '.join(p.name for p in paths)}; using {paths[0].name}",
                    )
                self.alias.create(paths[0], alias)
                report.created.append((str(paths[0]), str(alias)))
                self.logger.log(f"Created {alias} for {paths[0].name}", logging.DEBUG)

    def _walk_files(
        self,
        root: pathlib.Path,
        extensions: frozenset,
        report: NormalizationReport,
    ) -> Iterator[pathlib.Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                if os.path.splitext(filename)[1].lower() not in extensions:
                    continue
                try:
                    filename.encode("utf-8")
                except UnicodeEncodeError:
                    self._warn(report, f"Skipping undecodable file name in {dirpath}: {filename!r}")
                    continue
                yield pathlib.Path(dirpath, filename)

    def _warn(self, report: NormalizationReport, message: str) -> None:
        # Both walks visit a header, report its name once
        if message in report.warnings:
            return
        report.warnings.append(message)
        self.logger.log(message, logging.WARNING)
