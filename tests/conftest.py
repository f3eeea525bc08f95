"""Shared fixtures: isolated settings, scripted device tools and an in-memory action log."""

from pathlib import Path
from typing import Callable, List, Optional

import pytest

from flashxt.config import Settings
from flashxt.utils.tools import DeviceTools
from tests.fakes import FakeRunner, MemoryActionLogger


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        DOWNLOADS_DIR=str(tmp_path / "downloads"),
        DETAILS_FILE=str(tmp_path / "details.txt"),
        ADB_PATH="adb",
        FASTBOOT_PATH="fastboot",
        LOG_FORMAT="text",
    )


@pytest.fixture
def action_logger() -> MemoryActionLogger:
    return MemoryActionLogger()


@pytest.fixture
def make_tools(settings: Settings):
    def _make(handler: Optional[Callable[[List[str]], str]] = None) -> DeviceTools:
        return DeviceTools(settings, runner=FakeRunner(handler))
    return _make


@pytest.fixture
def image_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "images"
    directory.mkdir()
    return directory
