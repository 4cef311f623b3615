from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from horoscope_store import create_storage
from horoscope_store.config import StorageSettings
from horoscope_store.database import DatabaseStorage
from horoscope_store.memory import MemoryStorage
from horoscope_store.models import NewUser
from horoscope_store.sessions import DatabaseSessionStore, MemorySessionStore


def test_memory_backend_selected_by_settings() -> None:
    storage = create_storage(
        StorageSettings(backend="memory", session_ttl=timedelta(hours=2), session_prune_interval=timedelta(minutes=5))
    )
    try:
        assert isinstance(storage, MemoryStorage)
        assert isinstance(storage.session_store, MemorySessionStore)
        assert storage.session_store.ttl == timedelta(hours=2)
        assert storage.session_store.prune_interval == timedelta(minutes=5)
    finally:
        storage.close()


def test_database_backend_is_initialised(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'factory.sqlite3'}"
    storage = create_storage(StorageSettings(backend="database", database_url=url, mask_read_errors=False))
    try:
        assert isinstance(storage, DatabaseStorage)
        assert isinstance(storage.session_store, DatabaseSessionStore)
        assert storage.session_store.prune_interval == timedelta(minutes=15)
        assert "users" in inspect(storage.engine).get_table_names()
        created = storage.create_user(NewUser(email="factory@example.com", zodiac_sign="aquarius"))
        assert storage.get_user(created.id) == created
    finally:
        storage.close()


def test_initialisation_can_be_deferred(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'deferred.sqlite3'}"
    storage = create_storage(StorageSettings(database_url=url), initialize=False)
    try:
        assert isinstance(storage, DatabaseStorage)
        assert inspect(storage.engine).get_table_names() == []
    finally:
        storage.close()


def test_session_table_creation_can_be_disabled(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'no-sessions.sqlite3'}"
    storage = create_storage(
        StorageSettings(database_url=url, create_session_table=False, session_ttl=timedelta(hours=1))
    )
    try:
        assert isinstance(storage.session_store, DatabaseSessionStore)
        assert storage.session_store.ttl == timedelta(hours=1)
        assert "session" not in inspect(storage.engine).get_table_names()
        with pytest.raises(OperationalError):
            storage.session_store.create({"user_id": 1})
    finally:
        storage.close()
