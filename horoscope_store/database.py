"""Relational storage backend built on SQLAlchemy Core."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, TypeVar, Union

from sqlalchemy import Connection, Engine, create_engine, insert, select, update
from sqlalchemy.engine import RowMapping, make_url
from sqlalchemy.exc import SQLAlchemyError

from .models import (
    DeliveryLog,
    DeliveryType,
    Horoscope,
    NewDeliveryLog,
    NewHoroscope,
    NewUser,
    User,
    ZodiacSign,
    normalize_date,
    sign_value,
    user_changes,
)
from .schema import delivery_logs, horoscopes, metadata, users
from .sessions import DEFAULT_SESSION_TTL, DatabaseSessionStore, SessionStore
from .storage import Storage, delivery_channel

logger = logging.getLogger("horoscope.storage")

T = TypeVar("T")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_url(env_value: Optional[str]) -> str:
    """Turn a configured database location into a SQLAlchemy URL.

    Full URLs are returned unchanged. A bare filesystem path becomes a SQLite
    URL, and an empty value falls back to ``data/horoscope.sqlite3`` next to
    the project root.
    """

    if env_value and "://" in env_value:
        return env_value
    if env_value:
        path = Path(env_value).expanduser().resolve(strict=False)
    else:
        base_dir = Path(__file__).resolve().parent.parent / "data"
        path = (base_dir / "horoscope.sqlite3").resolve(strict=False)
    return f"sqlite:///{path}"


def create_database_engine(url: str, *, echo: bool = False) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            _ensure_directory(Path(parsed.database))
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_user(row: RowMapping) -> User:
    return User(
        id=int(row["id"]),
        email=str(row["email"]),
        zodiac_sign=str(row["zodiac_sign"]),
        password=row["password"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        birthdate=row["birthdate"],
        phone=row["phone"],
        sms_opt_in=bool(row["sms_opt_in"]),
        newsletter_opt_in=bool(row["newsletter_opt_in"]),
        created_at=row["created_at"],
    )


def _row_to_horoscope(row: RowMapping) -> Horoscope:
    return Horoscope(
        id=int(row["id"]),
        zodiac_sign=str(row["zodiac_sign"]),
        date=str(row["date"]),
        content=dict(row["content"]),
        created_at=row["created_at"],
    )


def _row_to_delivery_log(row: RowMapping) -> DeliveryLog:
    return DeliveryLog(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        horoscope_id=int(row["horoscope_id"]),
        delivery_type=str(row["delivery_type"]),
        status=str(row["status"]),
        created_at=row["created_at"],
    )


class DatabaseStorage(Storage):
    """Persist entities in ``users``, ``horoscopes`` and ``delivery_logs``.

    Each call runs a single statement or transaction on the shared connection
    pool; nothing is retried. A failing read is logged and reported as absence
    (``None`` or ``[]``) while ``mask_read_errors`` is true, so callers cannot
    tell it apart from a missing record. Failing writes are logged and
    re-raised unchanged.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        mask_read_errors: bool = True,
        session_store: Optional[SessionStore] = None,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
    ) -> None:
        self._engine = engine
        self._mask_read_errors = mask_read_errors
        if session_store is None:
            session_store = DatabaseSessionStore(engine, ttl=session_ttl)
        self.session_store = session_store

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, **kwargs: Any) -> "DatabaseStorage":
        return cls(create_database_engine(url, echo=echo), **kwargs)

    @property
    def engine(self) -> Engine:
        return self._engine

    def initialize(self) -> None:
        """Create the entity tables if they do not already exist."""

        metadata.create_all(self._engine)
        logger.info("Storage schema ready on %s", self._engine.url.render_as_string(hide_password=True))

    def close(self) -> None:
        super().close()
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Fault boundaries
    # ------------------------------------------------------------------
    def _read(self, description: str, default: T, operation: Callable[[Connection], T]) -> T:
        try:
            with self._engine.connect() as conn:
                return operation(conn)
        except SQLAlchemyError:
            logger.exception("Error %s", description)
            if not self._mask_read_errors:
                raise
            return default

    def _write(self, description: str, operation: Callable[[Connection], T]) -> T:
        try:
            with self._engine.begin() as conn:
                return operation(conn)
        except SQLAlchemyError:
            logger.exception("Error %s", description)
            raise

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @staticmethod
    def _fetch_user(conn: Connection, user_id: int) -> Optional[User]:
        row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
        return _row_to_user(row) if row is not None else None

    def get_user(self, user_id: int) -> Optional[User]:
        return self._read("getting user by ID", None, lambda conn: self._fetch_user(conn, user_id))

    def get_user_by_email(self, email: str) -> Optional[User]:
        def operation(conn: Connection) -> Optional[User]:
            row = conn.execute(select(users).where(users.c.email == email)).mappings().first()
            return _row_to_user(row) if row is not None else None

        return self._read("getting user by email", None, operation)

    def create_user(self, new_user: NewUser) -> User:
        values = new_user.as_values()
        values["created_at"] = _current_timestamp()

        def operation(conn: Connection) -> User:
            result = conn.execute(insert(users).values(**values))
            user = self._fetch_user(conn, int(result.inserted_primary_key[0]))
            if user is None:
                raise RuntimeError("Failed to load user after creation")
            return user

        return self._write("creating user", operation)

    def update_user(self, user_id: int, **fields: Any) -> Optional[User]:
        changes = user_changes(fields)
        if not changes:
            return self.get_user(user_id)

        def operation(conn: Connection) -> Optional[User]:
            result = conn.execute(update(users).where(users.c.id == user_id).values(**changes))
            if result.rowcount == 0:
                return None
            return self._fetch_user(conn, user_id)

        return self._write("updating user", operation)

    def list_users(self) -> List[User]:
        def operation(conn: Connection) -> List[User]:
            rows = conn.execute(select(users).order_by(users.c.id)).mappings().all()
            return [_row_to_user(row) for row in rows]

        return self._read("listing users", [], operation)

    # ------------------------------------------------------------------
    # Horoscopes
    # ------------------------------------------------------------------
    @staticmethod
    def _fetch_horoscope(conn: Connection, horoscope_id: int) -> Optional[Horoscope]:
        row = conn.execute(select(horoscopes).where(horoscopes.c.id == horoscope_id)).mappings().first()
        return _row_to_horoscope(row) if row is not None else None

    def get_horoscope(self, horoscope_id: int) -> Optional[Horoscope]:
        return self._read(
            "getting horoscope by ID", None, lambda conn: self._fetch_horoscope(conn, horoscope_id)
        )

    def get_horoscope_by_sign_and_date(
        self, sign: Union[str, ZodiacSign], day: Union[str, date]
    ) -> Optional[Horoscope]:
        query = (
            select(horoscopes)
            .where(horoscopes.c.zodiac_sign == sign_value(sign))
            .where(horoscopes.c.date == normalize_date(day))
        )

        def operation(conn: Connection) -> Optional[Horoscope]:
            row = conn.execute(query).mappings().first()
            return _row_to_horoscope(row) if row is not None else None

        return self._read("getting horoscope by sign and date", None, operation)

    def create_horoscope(self, new_horoscope: NewHoroscope) -> Horoscope:
        values = new_horoscope.as_values()
        values["created_at"] = _current_timestamp()

        def operation(conn: Connection) -> Horoscope:
            result = conn.execute(insert(horoscopes).values(**values))
            horoscope = self._fetch_horoscope(conn, int(result.inserted_primary_key[0]))
            if horoscope is None:
                raise RuntimeError("Failed to load horoscope after creation")
            return horoscope

        return self._write("creating horoscope", operation)

    def list_horoscopes(self) -> List[Horoscope]:
        def operation(conn: Connection) -> List[Horoscope]:
            rows = conn.execute(select(horoscopes).order_by(horoscopes.c.id)).mappings().all()
            return [_row_to_horoscope(row) for row in rows]

        return self._read("listing horoscopes", [], operation)

    # ------------------------------------------------------------------
    # Delivery logs
    # ------------------------------------------------------------------
    def create_delivery_log(self, new_log: NewDeliveryLog) -> DeliveryLog:
        values = new_log.as_values()
        values["created_at"] = _current_timestamp()

        def operation(conn: Connection) -> DeliveryLog:
            result = conn.execute(insert(delivery_logs).values(**values))
            log_id = int(result.inserted_primary_key[0])
            row = conn.execute(select(delivery_logs).where(delivery_logs.c.id == log_id)).mappings().one()
            return _row_to_delivery_log(row)

        return self._write("creating delivery log", operation)

    def get_delivery_logs_by_user(self, user_id: int) -> List[DeliveryLog]:
        def operation(conn: Connection) -> List[DeliveryLog]:
            rows = conn.execute(
                select(delivery_logs).where(delivery_logs.c.user_id == user_id).order_by(delivery_logs.c.id)
            ).mappings().all()
            return [_row_to_delivery_log(row) for row in rows]

        return self._read("getting delivery logs by user", [], operation)

    def list_delivery_logs(self) -> List[DeliveryLog]:
        def operation(conn: Connection) -> List[DeliveryLog]:
            rows = conn.execute(select(delivery_logs).order_by(delivery_logs.c.id)).mappings().all()
            return [_row_to_delivery_log(row) for row in rows]

        return self._read("listing delivery logs", [], operation)

    # ------------------------------------------------------------------
    # Audience queries
    # ------------------------------------------------------------------
    def get_users_by_zodiac_sign(self, sign: Union[str, ZodiacSign]) -> List[User]:
        def operation(conn: Connection) -> List[User]:
            rows = conn.execute(
                select(users).where(users.c.zodiac_sign == sign_value(sign)).order_by(users.c.id)
            ).mappings().all()
            return [_row_to_user(row) for row in rows]

        return self._read("getting users by zodiac sign", [], operation)

    def get_users_for_daily_delivery(
        self, channel: Optional[Union[str, DeliveryType]] = None
    ) -> List[User]:
        selected = delivery_channel(channel)
        query = select(users)
        if selected is DeliveryType.EMAIL:
            query = query.where(users.c.newsletter_opt_in.is_(True))
        elif selected is DeliveryType.SMS:
            query = query.where(users.c.sms_opt_in.is_(True), users.c.phone.is_not(None), users.c.phone != "")

        def operation(conn: Connection) -> List[User]:
            rows = conn.execute(query.order_by(users.c.id)).mappings().all()
            return [_row_to_user(row) for row in rows]

        return self._read("getting users for daily delivery", [], operation)


__all__ = ["DatabaseStorage", "create_database_engine", "resolve_database_url"]
