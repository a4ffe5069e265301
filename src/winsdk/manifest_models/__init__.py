"""
Manifest models for winsdk.

This package provides Pydantic data models for parsing the release channel,
the component manifest and the resolved package lists written between stages.
"""

from .manifest import (
    Channel,
    ChannelItem,
    Dependency,
    DependencyChip,
    DependencyType,
    Manifest,
    Package,
    PackageType,
    Payload,
    read_package_list,
    write_package_list,
)

__all__ = [
    # Channel
    "Channel",
    "ChannelItem",
    # Manifest
    "Manifest",
    "Package",
    "PackageType",
    "Dependency",
    "DependencyType",
    "DependencyChip",
    "Payload",
    # Package lists
    "read_package_list",
    "write_package_list",
]
