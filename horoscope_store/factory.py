"""Build the storage backend selected by configuration."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .config import StorageSettings, resolve_settings
from .database import DatabaseStorage, create_database_engine
from .memory import MemoryStorage
from .sessions import DatabaseSessionStore, MemorySessionStore
from .storage import Storage

logger = logging.getLogger("horoscope.storage")


def create_storage(settings: Optional[StorageSettings] = None, *, initialize: bool = True) -> Storage:
    """Instantiate and optionally initialise the configured backend.

    The caller owns the returned instance and passes it on to every consumer.
    """

    settings = settings or resolve_settings()

    session_options: Dict[str, Any] = {"ttl": settings.session_ttl}
    if settings.session_prune_interval is not None:
        session_options["prune_interval"] = settings.session_prune_interval

    storage: Storage
    if settings.backend == "memory":
        storage = MemoryStorage(session_store=MemorySessionStore(**session_options))
        logger.info("Using in-memory storage; data will not survive a restart")
    else:
        engine = create_database_engine(settings.database_url, echo=settings.echo_sql)
        session_store = DatabaseSessionStore(
            engine,
            create_table_if_missing=settings.create_session_table,
            **session_options,
        )
        storage = DatabaseStorage(
            engine,
            mask_read_errors=settings.mask_read_errors,
            session_store=session_store,
        )

    if initialize:
        storage.initialize()
    return storage


__all__ = ["create_storage"]
