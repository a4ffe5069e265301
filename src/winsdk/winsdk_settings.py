"""
Default locations used by winsdk when the configuration does not name them.
"""

import os
import pathlib


class WinSdkSettings:
    """
    Provides the default cache and output directories
    """

    CHANNEL_URL_TEMPLATE = "https://aka.ms/vs/{major_version}/release/channel"

    @staticmethod
    def get_global_cache_directory() -> str:
        """
        Get the payload cache directory. Honors the WINSDK_CACHE_DIR environment variable.
        """
        override = os.environ.get("WINSDK_CACHE_DIR")
        if override:
            return override
        return str(pathlib.Path.home() / ".winsdk" / "cache")

    @staticmethod
    def get_default_output_directory() -> str:
        """Get the directory the merged SDK tree is written to."""
        return str(pathlib.Path.cwd() / "sdk")

    @staticmethod
    def get_channel_url(major_version: str) -> str:
        return WinSdkSettings.CHANNEL_URL_TEMPLATE.format(major_version=major_version)
