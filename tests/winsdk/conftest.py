import pytest

from fakes import FakeInstallerTools, FakeSession
from winsdk.winsdk_logger import WinSdkLogger


@pytest.fixture
def logger() -> WinSdkLogger:
    return WinSdkLogger()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def tools() -> FakeInstallerTools:
    return FakeInstallerTools()
