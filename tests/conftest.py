from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from droidbridge.utils import Config
from helpers import FakeRunner


@pytest.fixture
def config(tmp_path: Path) -> Config:
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    return Config(upload_dir=str(uploads), log_grace_period=0.5)


@pytest.fixture
def fake_runner(config: Config) -> FakeRunner:
    return FakeRunner(config)


@pytest.fixture
def fake_adb(tmp_path: Path) -> Callable[[str], str]:
    """Write an executable ``adb`` shell script with the given body; return its path."""

    def make(body: str, name: str = "adb") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        path.chmod(0o755)
        return str(path)

    return make
