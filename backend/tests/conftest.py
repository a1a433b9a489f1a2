"""Test fixtures for Code Chronicle."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class FakeClock:
    """Millisecond clock advanced explicitly by tests."""

    def __init__(self, start: int = 1_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, delta: int = 1_000) -> int:
        self.now += delta
        return self.now


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate configuration and environment between tests."""
    for key in list(os.environ):
        if key.startswith("CHRON_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CHRON_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.setenv("CHRON_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CHRON_WORKSPACE_ROOT", str(tmp_path / "workspace"))

    from code_chronicle.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir(exist_ok=True)
    return root


@pytest.fixture
def settings(tmp_path: Path, workspace: Path):
    from code_chronicle.core.config import Settings

    return Settings(data_dir=tmp_path / "data", workspace_root=workspace)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(settings, clock: FakeClock):
    from code_chronicle.engine import TimeMachine

    machine = TimeMachine(settings, clock=clock, background=False).open()
    yield machine
    machine.close()
