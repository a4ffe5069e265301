"""
Dependency resolver.

Walks the manifest's package graph from a set of requested ids to the closure of
packages whose payloads must be materialized.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from winsdk.manifest_models import DependencyChip, Manifest, Package
from winsdk.winsdk_logger import WinSdkLogger


class PackageResolver:
    """
    Resolves requested package ids into their transitive dependency closure.

    Only dependency edges without a type qualifier are followed; Optional and
    Recommended edges are never auto-included. Package ids match case-insensitively.
    """

    def __init__(self, manifest: Manifest, logger: WinSdkLogger):
        """
        Index the manifest for O(1) lookups.

        Args:
            manifest: Loaded manifest
            logger: Logger for resolution messages
        """
        self.manifest = manifest
        self.logger = logger
        self._index: Dict[str, Package] = {}
        for package in manifest.packages:
            # First package wins when a manifest repeats an id
            self._index.setdefault(package.id.lower(), package)

    def get_package(self, package_id: str) -> Optional[Package]:
        return self._index.get(package_id.lower())

    def resolve(
        self,
        root_ids: Iterable[str],
        chips: Optional[Iterable[DependencyChip]] = None,
    ) -> List[Package]:
        """
        Resolve the closure of the given root ids.

        Args:
            root_ids: Requested package ids
            chips: If given, required edges qualified with a chip outside this set are not followed

        Returns:
            The packages of the closure, each exactly once. The order carries no meaning.
        """
        allowed_chips: Optional[Set[DependencyChip]] = set(chips) if chips is not None else None

        queue: List[str] = []
        seen: Set[str] = set()
        for root_id in root_ids:
            if root_id.lower() not in seen:
                seen.add(root_id.lower())
                queue.append(root_id)

        packages: List[Package] = []
        while queue:
            package_id = queue.pop()
            package = self.get_package(package_id)
            if package is None:
                self.logger.log(f"Skipping unknown package {package_id}", logging.DEBUG)
                continue

            packages.append(package)
            for dependency_id, dependency in package.dependencies.items():
                if not dependency.is_required():
                    continue
                if (
                    allowed_chips is not None
                    and dependency.chip is not None
                    and dependency.chip not in allowed_chips
                ):
                    continue
                if dependency_id.lower() not in seen:
                    seen.add(dependency_id.lower())
                    queue.append(dependency_id)

        self.logger.log(
            f"Resolved {len(packages)} packages with "
            f"{sum(len(p.payloads) for p in packages)} payloads",
            logging.INFO,
        )
        return packages


def resolve(
    manifest: Manifest,
    root_ids: Iterable[str],
    logger: Optional[WinSdkLogger] = None,
) -> List[Package]:
    """
    Resolve root_ids against manifest. See PackageResolver.resolve.
    """
    return PackageResolver(manifest, logger or WinSdkLogger()).resolve(root_ids)
