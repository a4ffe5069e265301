"""
Pydantic data models for the Visual Studio channel and manifest documents.

The channel document lists versioned items, one of which (type "Manifest")
points at the actual manifest. The manifest lists every package of the
release together with its dependency edges and downloadable payloads.
"""

import json
import pathlib
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from winsdk.winsdk_exceptions import ManifestParseError
from winsdk.winsdk_utils import FileUtils


class PackageType(str, Enum):
    """Closed set of package types a manifest may declare."""

    COMPONENT = "Component"
    EXE = "Exe"
    GROUP = "Group"
    MSI = "Msi"
    MSU = "Msu"
    NUPKG = "Nupkg"
    PRODUCT = "Product"
    VSIX = "Vsix"
    WINDOWS_FEATURE = "WindowsFeature"
    WORKLOAD = "Workload"
    ZIP = "Zip"


class DependencyType(str, Enum):
    OPTIONAL = "Optional"
    RECOMMENDED = "Recommended"


class DependencyChip(str, Enum):
    X86 = "x86"
    X64 = "x64"
    ARM = "arm"
    ARM64 = "arm64"


class Payload(BaseModel):
    """
    One downloadable file of a package.

    `sha256` is the only integrity anchor: it is stored as 64 lowercase hex
    characters and every byte fetched or read from the cache is checked against it.
    """

    file_name: str = Field(..., alias="fileName", description="File name, may use backslash separators")
    sha256: str = Field(..., description="Hex encoded SHA-256 of the payload")
    size: int = Field(..., ge=0, description="Size in bytes")
    url: str = Field(..., description="URL to download from")

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    @field_validator("sha256")
    @classmethod
    def _check_sha256(cls, value: str) -> str:
        value = value.lower()
        if len(value) != 64:
            raise ValueError(f"sha256 must be 64 hex characters, got {len(value)}")
        bytes.fromhex(value)
        return value

    @property
    def digest(self) -> bytes:
        """The raw 32-byte digest."""
        return bytes.fromhex(self.sha256)

    @property
    def relative_path(self) -> pathlib.PurePosixPath:
        """The file name as a relative path with forward slashes."""
        return FileUtils.normalize_payload_path(self.file_name)


class Dependency(BaseModel):
    """
    A dependency edge from a package to another package id.

    On the wire an edge is either a bare version string or an object with
    `version`, `type` and `chip`. Both shapes are normalized into this model.
    """

    version: str
    dependency_type: Optional[DependencyType] = Field(None, alias="type")
    chip: Optional[DependencyChip] = None

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _from_wire_shape(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"version": data}
        return data

    @field_validator("chip", mode="before")
    @classmethod
    def _lower_chip(cls, value: Any) -> Any:
        # The feed spells some chips "X86" / "X64"
        if isinstance(value, str):
            return value.lower()
        return value

    def is_required(self) -> bool:
        """Only edges without an Optional/Recommended qualifier are followed during resolution."""
        return self.dependency_type is None


class Package(BaseModel):
    """
    A named, versioned unit of the manifest.
    """

    id: str
    version: str
    package_type: PackageType = Field(..., alias="type")
    dependencies: Dict[str, Dependency] = Field(default_factory=dict)
    payloads: List[Payload] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the wire representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Manifest(BaseModel):
    """
    The manifest document, root of all resolution.

    Structure:
    {
      "manifestVersion": "1.1",
      "engineVersion": "3.4.2246.31370",
      "packages": [
        {
          "id": "Win10SDK_10.0.19041",
          "version": "10.0.19041.8",
          "type": "Exe",
          "dependencies": {"Win10SDK_Desktop": "10.0.19041.8", ...},
          "payloads": [{"fileName": "...", "sha256": "...", "size": 1, "url": "..."}]
        },
        ...
      ]
    }
    """

    manifest_version: str = Field(..., alias="manifestVersion")
    engine_version: str = Field(..., alias="engineVersion")
    packages: List[Package]

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        """
        Validate a decoded manifest document.

        Raises:
            ManifestParseError: if the document does not match the manifest schema
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ManifestParseError(f"Invalid manifest: {e}") from e

    @classmethod
    def from_file(cls, path: Union[str, pathlib.Path]) -> "Manifest":
        return cls.from_dict(_load_json(path))


class ChannelItem(BaseModel):
    id: str
    version: str
    item_type: str = Field(..., alias="type")
    payloads: Optional[List[Dict[str, Any]]] = None

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


class Channel(BaseModel):
    """
    The release channel document published at https://aka.ms/vs/<major>/release/channel.
    """

    channel_items: List[ChannelItem] = Field(..., alias="channelItems")

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Channel":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ManifestParseError(f"Invalid channel: {e}") from e

    def manifest_payload(self) -> Payload:
        """
        Get the payload describing where the manifest lives.

        Raises:
            ManifestParseError: if the channel carries no Manifest item with a payload
        """
        for item in self.channel_items:
            if item.item_type == "Manifest":
                if not item.payloads:
                    raise ManifestParseError(f"Channel item {item.id} has no payloads")
                try:
                    return Payload.model_validate(item.payloads[0])
                except ValidationError as e:
                    raise ManifestParseError(f"Invalid manifest payload in channel item {item.id}: {e}") from e
        raise ManifestParseError("Channel has no item of type Manifest")


_PACKAGE_LIST = TypeAdapter(List[Package])


def read_package_list(path: Union[str, pathlib.Path]) -> List[Package]:
    """
    Read a resolved package list written by `write_package_list`.
    """
    try:
        return _PACKAGE_LIST.validate_python(_load_json(path))
    except ValidationError as e:
        raise ManifestParseError(f"Invalid package list {path}: {e}") from e


def write_package_list(path: Union[str, pathlib.Path], packages: List[Package]) -> None:
    """
    Serialize a resolved package list so that fetch and extraction can run as
    separate steps.
    """
    data = _PACKAGE_LIST.dump_python(packages, mode="json", by_alias=True, exclude_none=True)
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _load_json(path: Union[str, pathlib.Path]) -> Any:
    try:
        with open(path, "rb") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"{path} is not valid JSON: {e}") from e
