"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from code_chronicle.core.config import Settings, get_settings


def test_defaults_come_from_environment(tmp_path: Path) -> None:
    settings = get_settings()
    assert settings.data_dir == tmp_path / "data"
    assert settings.archive_path == tmp_path / "data" / "blobs.zst"
    assert settings.db_path == tmp_path / "data" / "chronicle.db"
    assert settings.batch_interval_ms == 3000
    assert settings.idle_timeout_minutes == 15


def test_yaml_sections_are_flattened(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "recording:\n"
        "  batch_interval_ms: 4000\n"
        "  idle_timeout_minutes: 30\n"
        "retention:\n"
        "  max_snapshots: 20\n"
        "  min_snapshots: 2\n"
        "delta:\n"
        "  max_hops: 4\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CHRON_MAX_SNAPSHOTS", "25")

    settings = Settings.from_yaml(config)

    assert settings.batch_interval_ms == 4000
    assert settings.idle_timeout_minutes == 30
    assert settings.max_snapshots == 25
    assert settings.min_snapshots == 2
    assert settings.max_delta_hops == 4


def test_intervals_are_clamped() -> None:
    assert Settings(batch_interval_ms=10).batch_interval_ms == 2000
    assert Settings(batch_interval_ms=60_000).batch_interval_ms == 5000
    assert Settings(idle_timeout_minutes=0).idle_timeout_minutes == 1


def test_retention_floor_must_not_exceed_cap() -> None:
    with pytest.raises(ValidationError):
        Settings(max_snapshots=2, min_snapshots=5)
