"""
Package resolution for winsdk.

This package handles:
1. Indexing a loaded manifest by package id
2. Following required dependency edges from the requested root ids
3. Producing the package list consumed by the downloader and extractor
"""

from .resolver import PackageResolver, resolve

__all__ = ["PackageResolver", "resolve"]
