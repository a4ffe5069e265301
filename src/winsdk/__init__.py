"""
winsdk assembles a Windows SDK and MSVC toolchain tree from the Visual Studio package feed.

The stages are:
1. Manifest models and dependency resolution (`winsdk.package_resolver`)
2. Content-verified payload cache (`winsdk.payload_downloader`)
3. MSI/VSIX extraction (`winsdk.payload_extractor`)
4. Case normalization for case-sensitive filesystems (`winsdk.case_normalizer`)
"""

from winsdk.pipeline import SdkPipeline
from winsdk.winsdk_config import WinSdkConfig
from winsdk.winsdk_logger import WinSdkLogger

__all__ = ["SdkPipeline", "WinSdkConfig", "WinSdkLogger"]
