from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from horoscope_store.database import DatabaseStorage
from horoscope_store.memory import MemoryStorage
from horoscope_store.storage import Storage


@pytest.fixture()
def memory_storage() -> Iterator[MemoryStorage]:
    storage = MemoryStorage()
    yield storage
    storage.close()


@pytest.fixture()
def database_storage(tmp_path: Path) -> Iterator[DatabaseStorage]:
    storage = DatabaseStorage.from_url(f"sqlite:///{tmp_path / 'horoscope.sqlite3'}")
    storage.initialize()
    yield storage
    storage.close()


@pytest.fixture(params=["memory", "database"])
def storage(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[Storage]:
    backend: Storage
    if request.param == "memory":
        backend = MemoryStorage()
    else:
        backend = DatabaseStorage.from_url(f"sqlite:///{tmp_path / 'contract.sqlite3'}")
    backend.initialize()
    yield backend
    backend.close()
