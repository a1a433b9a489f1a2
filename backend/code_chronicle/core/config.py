"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "CHRON_"
DEFAULT_CONFIG_PATH = Path("~/.config/code-chronicle/config.yaml")

MIN_BATCH_INTERVAL_MS = 2000
MAX_BATCH_INTERVAL_MS = 5000
MIN_IDLE_TIMEOUT_MINUTES = 1
MAX_IDLE_TIMEOUT_MINUTES = 240

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "data_dir"): "data_dir",
    ("storage", "flush_interval_seconds"): "flush_interval_seconds",
    ("workspace", "root"): "workspace_root",
    ("workspace", "include_glob"): "include_glob",
    ("workspace", "exclude_glob"): "exclude_glob",
    ("workspace", "watch"): "watch",
    ("recording", "enabled"): "enabled",
    ("recording", "batch_interval_ms"): "batch_interval_ms",
    ("recording", "idle_timeout_minutes"): "idle_timeout_minutes",
    ("retention", "max_snapshots"): "max_snapshots",
    ("retention", "min_snapshots"): "min_snapshots",
    ("retention", "max_store_bytes"): "max_store_bytes",
    ("delta", "sample_lines"): "sample_lines",
    ("delta", "similarity_floor"): "similarity_floor",
    ("delta", "delta_floor"): "delta_floor",
    ("delta", "size_ratio"): "delta_size_ratio",
    ("delta", "lookahead"): "diff_lookahead",
    ("delta", "max_hops"): "max_delta_hops",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    data_dir: Path = Field(default=Path.home() / ".code-chronicle")
    workspace_root: Path = Field(default_factory=Path.cwd)
    enabled: bool = True
    watch: bool = False
    batch_interval_ms: int = 3000
    idle_timeout_minutes: int = 15
    flush_interval_seconds: float = 5.0
    max_snapshots: int = 100
    min_snapshots: int = 5
    max_store_bytes: int = 50 * 1024 * 1024
    sample_lines: int = 50
    similarity_floor: float = 0.5
    delta_floor: float = 0.6
    delta_size_ratio: float = 0.6
    diff_lookahead: int = 10
    max_delta_hops: int = 16
    include_glob: str | None = None
    exclude_glob: str = "**/{.git,node_modules,.history_machine,.code-chronicle}/**"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("data_dir", "workspace_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("path settings must be a path or string")

    @field_validator("batch_interval_ms", mode="after")
    @classmethod
    def _clamp_batch_interval(cls, value: int) -> int:
        return max(MIN_BATCH_INTERVAL_MS, min(MAX_BATCH_INTERVAL_MS, value))

    @field_validator("idle_timeout_minutes", mode="after")
    @classmethod
    def _clamp_idle_timeout(cls, value: int) -> int:
        return max(MIN_IDLE_TIMEOUT_MINUTES, min(MAX_IDLE_TIMEOUT_MINUTES, value))

    @field_validator("min_snapshots", "max_snapshots", "sample_lines", "diff_lookahead", "max_delta_hops")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @model_validator(mode="after")
    def _check_retention(self) -> "Settings":
        if self.max_snapshots < self.min_snapshots:
            raise ValueError("max_snapshots must not be below min_snapshots")
        return self

    @property
    def archive_path(self) -> Path:
        return self.data_dir / "blobs.zst"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "chronicle.db"

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with CHRON_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
