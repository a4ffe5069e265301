"""
Payload extraction for winsdk.

This package handles:
1. Classifying payloads as MSI installers, VSIX archives or pass-through files
2. Expanding them with external tools into scratch directories
3. Merging the product subtrees into the output directory
"""

from .extractor import ExtractionKind, PayloadExtractor, classify
from .tools import InstallerTools, SubprocessInstallerTools

__all__ = [
    "ExtractionKind",
    "PayloadExtractor",
    "classify",
    "InstallerTools",
    "SubprocessInstallerTools",
]
