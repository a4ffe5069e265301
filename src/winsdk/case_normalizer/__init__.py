"""
Case normalization for winsdk.

Makes header and import library names resolvable on case-sensitive filesystems
by renaming them to lowercase and aliasing the casings used by include directives.
"""

from .normalizer import (
    AliasStrategy,
    CaseNormalizer,
    CopyAlias,
    NormalizationReport,
    SymlinkAlias,
    make_alias_strategy,
)

__all__ = [
    "CaseNormalizer",
    "NormalizationReport",
    "AliasStrategy",
    "CopyAlias",
    "SymlinkAlias",
    "make_alias_strategy",
]
