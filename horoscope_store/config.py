"""Configuration management for the horoscope store."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_url

BACKENDS = ("memory", "database")

_ENV_CONFIG = "HOROSCOPE_CONFIG"
_ENV_BACKEND = "HOROSCOPE_STORAGE_BACKEND"
_ENV_DATABASE_URL = "HOROSCOPE_DATABASE_URL"
_ENV_LOG_LEVEL = "HOROSCOPE_LOG_LEVEL"


def _parse_flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Expected a boolean value, got {value!r}")


def _parse_seconds(value: object, name: str) -> timedelta:
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{name}' must be a number of seconds") from exc
    if seconds <= 0:
        raise ValueError(f"'{name}' must be positive")
    return timedelta(seconds=seconds)


@dataclass(frozen=True)
class StorageSettings:
    """Settings that decide which backend the process runs on."""

    backend: str = "database"
    database_url: str = ""
    mask_read_errors: bool = True
    session_ttl: timedelta = timedelta(days=30)
    session_prune_interval: Optional[timedelta] = None
    create_session_table: bool = True
    log_level: str = "INFO"
    echo_sql: bool = False

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown storage backend '{self.backend}'. Expected one of: {', '.join(BACKENDS)}")
        if not self.database_url:
            object.__setattr__(self, "database_url", resolve_database_url(None))
        level = self.log_level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{self.log_level}'")
        object.__setattr__(self, "log_level", level)

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "StorageSettings":
        """Create :class:`StorageSettings` from raw dictionary data."""

        known = {
            "backend",
            "database_url",
            "mask_read_errors",
            "session_ttl_seconds",
            "session_prune_interval_seconds",
            "create_session_table",
            "log_level",
            "echo_sql",
        }
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown storage configuration fields: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, object] = {}
        if data.get("backend") is not None:
            kwargs["backend"] = str(data["backend"]).strip().lower()
        if data.get("database_url"):
            kwargs["database_url"] = resolve_database_url(str(data["database_url"]))
        if data.get("mask_read_errors") is not None:
            kwargs["mask_read_errors"] = _parse_flag(data["mask_read_errors"])
        if data.get("session_ttl_seconds") is not None:
            kwargs["session_ttl"] = _parse_seconds(data["session_ttl_seconds"], "session_ttl_seconds")
        if data.get("session_prune_interval_seconds") is not None:
            kwargs["session_prune_interval"] = _parse_seconds(
                data["session_prune_interval_seconds"], "session_prune_interval_seconds"
            )
        if data.get("create_session_table") is not None:
            kwargs["create_session_table"] = _parse_flag(data["create_session_table"])
        if data.get("log_level") is not None:
            kwargs["log_level"] = str(data["log_level"])
        if data.get("echo_sql") is not None:
            kwargs["echo_sql"] = _parse_flag(data["echo_sql"])
        return StorageSettings(**kwargs)  # type: ignore[arg-type]

    def with_environment(self, environ: Mapping[str, str]) -> "StorageSettings":
        """Return a copy with ``HOROSCOPE_*`` environment overrides applied."""

        overrides: Dict[str, object] = {}
        backend = environ.get(_ENV_BACKEND)
        if backend:
            overrides["backend"] = backend.strip().lower()
        database_url = environ.get(_ENV_DATABASE_URL)
        if database_url:
            overrides["database_url"] = resolve_database_url(database_url)
        log_level = environ.get(_ENV_LOG_LEVEL)
        if log_level:
            overrides["log_level"] = log_level.strip()
        if not overrides:
            return self
        return replace(self, **overrides)  # type: ignore[arg-type]


def load_settings(config_path: Path) -> StorageSettings:
    """Load storage settings from a YAML file."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping")
    section = raw.get("storage", raw)
    if not isinstance(section, dict):
        raise ValueError("The 'storage' section must be a mapping")
    return StorageSettings.from_dict(section)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "storage.yaml").resolve(strict=False)
    return candidate


def resolve_settings(environ: Optional[Mapping[str, str]] = None) -> StorageSettings:
    """Build the process settings from the optional YAML file and environment.

    An explicitly configured ``HOROSCOPE_CONFIG`` must exist; the default
    location is only read when present.
    """

    env = os.environ if environ is None else environ
    explicit = env.get(_ENV_CONFIG)
    config_path = resolve_config_path(explicit)
    if config_path.exists():
        settings = load_settings(config_path)
    elif explicit:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    else:
        settings = StorageSettings()
    return settings.with_environment(env)


__all__ = [
    "BACKENDS",
    "StorageSettings",
    "load_settings",
    "resolve_config_path",
    "resolve_settings",
]
