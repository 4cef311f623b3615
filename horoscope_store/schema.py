"""Relational schema for the database-backed store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Dialect
from sqlalchemy.types import JSON, TypeDecorator


class UTCDateTime(TypeDecorator):
    """Timestamp column that always round-trips timezone-aware UTC values.

    SQLite has no timezone support, so values are stored there as naive UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Dialect) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", Text, nullable=False, unique=True),
    Column("password", Text),
    Column("first_name", Text),
    Column("last_name", Text),
    Column("zodiac_sign", String(16), nullable=False, index=True),
    Column("birthdate", Text),
    Column("phone", Text),
    Column("sms_opt_in", Boolean, nullable=False, default=False),
    Column("newsletter_opt_in", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime(), nullable=False),
)

horoscopes = Table(
    "horoscopes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("zodiac_sign", String(16), nullable=False),
    Column("date", Text, nullable=False),
    Column("content", JSON, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
)

delivery_logs = Table(
    "delivery_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("horoscope_id", Integer, nullable=False),
    Column("delivery_type", String(16), nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
)


__all__ = ["UTCDateTime", "delivery_logs", "horoscopes", "metadata", "users"]
