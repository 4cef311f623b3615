"""Persistence layer for the daily wellness horoscope service."""

from __future__ import annotations

from typing import Any

from .database import DatabaseStorage, resolve_database_url
from .factory import create_storage
from .memory import MemoryStorage
from .storage import Storage


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "DatabaseStorage",
    "MemoryStorage",
    "Storage",
    "create_app",
    "create_storage",
    "resolve_database_url",
]
