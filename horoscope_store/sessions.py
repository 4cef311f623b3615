"""Session stores backing the authentication layer.

Both stores keep opaque JSON-compatible session payloads keyed by a session
id. Expired entries are never returned and are removed by :meth:`prune`, which
a background thread calls on a fixed interval once :meth:`start_pruning` has
been invoked.
"""

from __future__ import annotations

import copy
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, Engine, Index, MetaData, String, Table, delete, func, select, update
from sqlalchemy.types import JSON

from .schema import UTCDateTime

logger = logging.getLogger("horoscope.sessions")

DEFAULT_SESSION_TTL = timedelta(days=30)


class SessionStore(ABC):
    """Keyed store for session payloads with time-based expiry."""

    def __init__(self, *, ttl: timedelta, prune_interval: timedelta) -> None:
        if ttl <= timedelta(0):
            raise ValueError("Session TTL must be positive")
        if prune_interval <= timedelta(0):
            raise ValueError("Session prune interval must be positive")
        self._ttl = ttl
        self._prune_interval = prune_interval
        self._stop = threading.Event()
        self._pruner: Optional[threading.Thread] = None

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def prune_interval(self) -> timedelta:
        return self._prune_interval

    @abstractmethod
    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def set(self, sid: str, data: Dict[str, Any], *, ttl: Optional[timedelta] = None) -> None:
        pass

    @abstractmethod
    def touch(self, sid: str) -> bool:
        """Push the expiry of a live session forward by the TTL."""

    @abstractmethod
    def destroy(self, sid: str) -> None:
        pass

    @abstractmethod
    def prune(self) -> int:
        """Remove expired sessions and return how many were dropped."""

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    def create(self, data: Optional[Dict[str, Any]] = None) -> str:
        sid = secrets.token_urlsafe(32)
        self.set(sid, data or {})
        return sid

    def start_pruning(self) -> None:
        if self._pruner is not None and self._pruner.is_alive():
            return
        self._stop.clear()
        self._pruner = threading.Thread(
            target=self._prune_loop,
            name=f"{type(self).__name__}-pruner",
            daemon=True,
        )
        self._pruner.start()

    def close(self) -> None:
        self._stop.set()
        pruner, self._pruner = self._pruner, None
        if pruner is not None:
            pruner.join(timeout=5)

    def _prune_loop(self) -> None:
        interval = self._prune_interval.total_seconds()
        while not self._stop.wait(interval):
            try:
                removed = self.prune()
            except Exception:  # pragma: no cover - keep the pruner alive
                logger.exception("Failed to prune expired sessions")
                continue
            if removed:
                logger.debug("Pruned %d expired session(s)", removed)

    def _expiry(self, ttl: Optional[timedelta]) -> datetime:
        return self._now() + (ttl if ttl is not None else self._ttl)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class _SessionRecord:
    data: Dict[str, Any]
    expires_at: datetime


class MemorySessionStore(SessionStore):
    """Process-local session store."""

    def __init__(
        self,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        prune_interval: timedelta = timedelta(hours=24),
    ) -> None:
        super().__init__(ttl=ttl, prune_interval=prune_interval)
        self._sessions: Dict[str, _SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        now = self._now()
        with self._lock:
            record = self._sessions.get(sid)
            if record is None:
                return None
            if record.expires_at <= now:
                self._sessions.pop(sid, None)
                return None
            return copy.deepcopy(record.data)

    def set(self, sid: str, data: Dict[str, Any], *, ttl: Optional[timedelta] = None) -> None:
        record = _SessionRecord(data=copy.deepcopy(data), expires_at=self._expiry(ttl))
        with self._lock:
            self._sessions[sid] = record

    def touch(self, sid: str) -> bool:
        now = self._now()
        with self._lock:
            record = self._sessions.get(sid)
            if record is None or record.expires_at <= now:
                return False
            record.expires_at = now + self._ttl
            return True

    def destroy(self, sid: str) -> None:
        with self._lock:
            self._sessions.pop(sid, None)

    def prune(self) -> int:
        now = self._now()
        with self._lock:
            expired = [sid for sid, record in self._sessions.items() if record.expires_at <= now]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        now = self._now()
        with self._lock:
            return sum(1 for record in self._sessions.values() if record.expires_at > now)


session_metadata = MetaData()

session_table = Table(
    "session",
    session_metadata,
    Column("sid", String(255), primary_key=True),
    Column("sess", JSON, nullable=False),
    Column("expire", UTCDateTime(), nullable=False),
    Index("IDX_session_expire", "expire"),
)


class DatabaseSessionStore(SessionStore):
    """Session store persisted in the relational database.

    The ``session`` table is created on first use when
    ``create_table_if_missing`` is true.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        prune_interval: timedelta = timedelta(minutes=15),
        create_table_if_missing: bool = True,
    ) -> None:
        super().__init__(ttl=ttl, prune_interval=prune_interval)
        self._engine = engine
        self._table_ready = not create_table_if_missing
        self._table_lock = threading.Lock()

    def _ensure_table(self) -> None:
        if self._table_ready:
            return
        with self._table_lock:
            if self._table_ready:
                return
            session_table.create(self._engine, checkfirst=True)
            logger.info("Session table is ready")
            self._table_ready = True

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        self._ensure_table()
        query = select(session_table.c.sess).where(
            session_table.c.sid == sid,
            session_table.c.expire > self._now(),
        )
        with self._engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None
        return dict(row.sess)

    def set(self, sid: str, data: Dict[str, Any], *, ttl: Optional[timedelta] = None) -> None:
        self._ensure_table()
        expire = self._expiry(ttl)
        with self._engine.begin() as conn:
            conn.execute(delete(session_table).where(session_table.c.sid == sid))
            conn.execute(session_table.insert().values(sid=sid, sess=dict(data), expire=expire))

    def touch(self, sid: str) -> bool:
        self._ensure_table()
        now = self._now()
        with self._engine.begin() as conn:
            result = conn.execute(
                update(session_table)
                .where(session_table.c.sid == sid, session_table.c.expire > now)
                .values(expire=now + self._ttl)
            )
        return result.rowcount > 0

    def destroy(self, sid: str) -> None:
        self._ensure_table()
        with self._engine.begin() as conn:
            conn.execute(delete(session_table).where(session_table.c.sid == sid))

    def prune(self) -> int:
        self._ensure_table()
        with self._engine.begin() as conn:
            result = conn.execute(delete(session_table).where(session_table.c.expire <= self._now()))
        return result.rowcount

    def clear(self) -> None:
        self._ensure_table()
        with self._engine.begin() as conn:
            conn.execute(delete(session_table))

    def __len__(self) -> int:
        self._ensure_table()
        query = select(func.count()).select_from(session_table).where(session_table.c.expire > self._now())
        with self._engine.connect() as conn:
            return int(conn.execute(query).scalar_one())


__all__ = [
    "DEFAULT_SESSION_TTL",
    "DatabaseSessionStore",
    "MemorySessionStore",
    "SessionStore",
    "session_table",
]
