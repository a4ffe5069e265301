"""
Filesystem and hashing helpers shared by the winsdk stages.
"""

import hashlib
import os
import pathlib
import shutil
from typing import Callable, Optional, Union

from winsdk.winsdk_exceptions import UnsafePayloadPathError

DEFAULT_CHUNK_SIZE = 1024 * 1024

PathLike = Union[str, os.PathLike]


class FileUtils:
    """
    Utility functions for payload files and directory trees
    """

    @staticmethod
    def normalize_payload_path(file_name: str) -> pathlib.PurePosixPath:
        """
        Convert a manifest file name (which may use backslash separators) into a
        relative POSIX path.

        Raises:
            UnsafePayloadPathError: if the name is empty, absolute, or contains ".."
        """
        normalized = file_name.replace("\\", "/")
        relative = pathlib.PurePosixPath(normalized)
        if not normalized or relative.is_absolute() or ":" in relative.parts[0]:
            raise UnsafePayloadPathError(f"Payload file name is not a relative path: {file_name!r}")
        if any(part == ".." for part in relative.parts):
            raise UnsafePayloadPathError(f"Payload file name escapes its directory: {file_name!r}")
        return relative

    @staticmethod
    def normalize_path_component(name: str) -> str:
        """
        Check that a package id can be used as a single directory name.

        Raises:
            UnsafePayloadPathError: if the name is empty, "." or "..", or contains a
                path separator or drive letter
        """
        if name in ("", ".", "..") or any(separator in name for separator in ("/", "\\", ":", "\0")):
            raise UnsafePayloadPathError(f"Package id is not a plain directory name: {name!r}")
        return name

    @staticmethod
    def sha256_file(
        path: PathLike,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_chunk: Optional[Callable[[int], None]] = None,
    ) -> str:
        """
        Stream a file through SHA-256 and return the lowercase hex digest.

        Args:
            path: File to hash
            chunk_size: Read size in bytes
            on_chunk: Called with the size of every chunk read (progress hook)
        """
        sha256 = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                sha256.update(chunk)
                if on_chunk is not None:
                    on_chunk(len(chunk))
        return sha256.hexdigest()

    @staticmethod
    def reset_directory(path: PathLike) -> pathlib.Path:
        """Remove the directory if it exists and create it empty."""
        path = pathlib.Path(path)
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
        return path

    @staticmethod
    def merge_tree(source: PathLike, destination: PathLike) -> None:
        """
        Recursively copy source into destination, overwriting files that exist
        in both. Behaves like `cp -r source/. destination`.
        """
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
