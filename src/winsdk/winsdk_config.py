"""
Configuration parameters for winsdk.

A configuration can be built from a dictionary or loaded from a winsdk.toml file:

```toml
[winsdk]
major_version = "17"
packages = [
    "Microsoft.VisualStudio.Component.VC.Tools.x86.x64",
    "Microsoft.VisualStudio.Component.Windows10SDK.19041",
]
cache_dir = "/var/cache/winsdk"
output_dir = "/opt/winsdk"
# manifest_path = "manifest.json"
# cache_layout = "package"   # or "digest"
# case_mode = "rename"       # or "alias"
# alias = "symlink"          # or "copy"
```
"""

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ModuleNotFoundError:
    # Python < 3.11
    import tomli as tomllib

from winsdk.winsdk_exceptions import ConfigurationError
from winsdk.winsdk_settings import WinSdkSettings


class CacheLayout(str, Enum):
    """
    How payloads are laid out in the fetch cache.
    """

    PACKAGE = "package"
    """`<cache>/<packageId>/<fileName>`, same-named payloads of different packages never collide."""
    DIGEST = "digest"
    """`<cache>/<sha256hex>`, content-addressed store."""


class CaseMode(str, Enum):
    """
    How header and import library names are canonicalized to lowercase.
    """

    RENAME = "rename"
    ALIAS = "alias"


class AliasKind(str, Enum):
    SYMLINK = "symlink"
    COPY = "copy"


DEFAULT_PRODUCT_ROOTS = ["Windows Kits", "VC"]


@dataclass
class WinSdkConfig:
    """
    Configuration of a single winsdk run
    """

    packages: List[str] = field(default_factory=list)
    major_version: Optional[str] = None
    manifest_url: Optional[str] = None
    manifest_path: Optional[str] = None
    cache_dir: str = field(default_factory=WinSdkSettings.get_global_cache_directory)
    output_dir: str = field(default_factory=WinSdkSettings.get_default_output_directory)
    cache_layout: CacheLayout = CacheLayout.PACKAGE
    max_workers: int = 8
    http_retries: int = 0
    timeout: float = 60.0
    case_mode: CaseMode = CaseMode.RENAME
    alias: AliasKind = AliasKind.SYMLINK
    promote_all: bool = False
    product_roots: List[str] = field(default_factory=lambda: list(DEFAULT_PRODUCT_ROOTS))

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: if the configuration cannot drive a run
        """
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.http_retries < 0:
            raise ConfigurationError(f"http_retries must not be negative, got {self.http_retries}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if not self.promote_all and not self.product_roots:
            raise ConfigurationError("product_roots must not be empty unless promote_all is set")

    def require_manifest_source(self) -> None:
        if not (self.manifest_path or self.manifest_url or self.major_version):
            raise ConfigurationError(
                "One of manifest_path, manifest_url or major_version is required"
            )

    @classmethod
    def from_dict(cls, env: Dict[str, Any]) -> "WinSdkConfig":
        """
        Create a WinSdkConfig instance from a dictionary
        """
        unknown = set(env) - {f.name for f in fields(cls)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

        values = dict(env)
        try:
            if "cache_layout" in values:
                values["cache_layout"] = CacheLayout(str(values["cache_layout"]).lower())
            if "case_mode" in values:
                values["case_mode"] = CaseMode(str(values["case_mode"]).lower())
            if "alias" in values:
                values["alias"] = AliasKind(str(values["alias"]).lower())
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        for list_key in ("packages", "product_roots"):
            if list_key in values and not isinstance(values[list_key], list):
                raise ConfigurationError(f"'{list_key}' must be a list")
        if "major_version" in values and values["major_version"] is not None:
            values["major_version"] = str(values["major_version"])

        config = cls(**values)
        config.validate()
        return config

    @classmethod
    def from_toml(cls, path: str) -> "WinSdkConfig":
        """
        Load the [winsdk] section of a TOML file. Relative directories are resolved
        against the directory containing the file.
        """
        try:
            with open(path, "rb") as f:
                toml_dict = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"Failed to load {path}: {e}") from e

        section = toml_dict.get("winsdk")
        if not isinstance(section, dict):
            raise ConfigurationError(f"{path} has no [winsdk] section")

        base_dir = os.path.dirname(os.path.abspath(path))
        section = dict(section)
        for path_key in ("cache_dir", "output_dir", "manifest_path"):
            value = section.get(path_key)
            if value and not os.path.isabs(value):
                section[path_key] = os.path.join(base_dir, value)
        return cls.from_dict(section)

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: value.value if isinstance(value, Enum) else value
            for name, value in self.__dict__.items()
        }
