"""Process-local storage backend for development and tests."""

from __future__ import annotations

import copy
import dataclasses
import itertools
import threading
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

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
from .sessions import MemorySessionStore, SessionStore
from .storage import Storage, delivery_channel, wants_delivery


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _copy_horoscope(horoscope: Horoscope) -> Horoscope:
    return dataclasses.replace(horoscope, content=copy.deepcopy(horoscope.content))


class MemoryStorage(Storage):
    """Keep every entity in dictionaries keyed by integer id.

    Ids come from one counter per entity type. Drawing the id and inserting the
    record happen under a single lock acquisition, so concurrent creations can
    never be handed the same id. Lookups by anything other than id scan the
    full collection. No uniqueness checks are performed; two users may share
    an email address.
    """

    def __init__(self, *, session_store: Optional[SessionStore] = None) -> None:
        self._users: Dict[int, User] = {}
        self._horoscopes: Dict[int, Horoscope] = {}
        self._delivery_logs: Dict[int, DeliveryLog] = {}
        self._user_ids = itertools.count(1)
        self._horoscope_ids = itertools.count(1)
        self._delivery_log_ids = itertools.count(1)
        self._lock = threading.Lock()
        self.session_store = session_store if session_store is not None else MemorySessionStore()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            return next((user for user in self._users.values() if user.email == email), None)

    def create_user(self, new_user: NewUser) -> User:
        created_at = _current_timestamp()
        with self._lock:
            user = User(id=next(self._user_ids), created_at=created_at, **new_user.as_values())
            self._users[user.id] = user
        return user

    def update_user(self, user_id: int, **fields: Any) -> Optional[User]:
        changes = user_changes(fields)
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                return None
            if not changes:
                return existing
            updated = dataclasses.replace(existing, **changes)
            self._users[user_id] = updated
        return updated

    def list_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    # ------------------------------------------------------------------
    # Horoscopes
    # ------------------------------------------------------------------
    def get_horoscope(self, horoscope_id: int) -> Optional[Horoscope]:
        with self._lock:
            horoscope = self._horoscopes.get(horoscope_id)
        return _copy_horoscope(horoscope) if horoscope is not None else None

    def get_horoscope_by_sign_and_date(
        self, sign: Union[str, ZodiacSign], day: Union[str, date]
    ) -> Optional[Horoscope]:
        wanted_sign = sign_value(sign)
        wanted_day = normalize_date(day)
        with self._lock:
            horoscope = next(
                (
                    item
                    for item in self._horoscopes.values()
                    if item.zodiac_sign == wanted_sign and item.date == wanted_day
                ),
                None,
            )
        return _copy_horoscope(horoscope) if horoscope is not None else None

    def create_horoscope(self, new_horoscope: NewHoroscope) -> Horoscope:
        created_at = _current_timestamp()
        with self._lock:
            horoscope = Horoscope(
                id=next(self._horoscope_ids),
                created_at=created_at,
                **new_horoscope.as_values(),
            )
            self._horoscopes[horoscope.id] = horoscope
        return _copy_horoscope(horoscope)

    def list_horoscopes(self) -> List[Horoscope]:
        with self._lock:
            stored = list(self._horoscopes.values())
        return [_copy_horoscope(item) for item in stored]

    # ------------------------------------------------------------------
    # Delivery logs
    # ------------------------------------------------------------------
    def create_delivery_log(self, new_log: NewDeliveryLog) -> DeliveryLog:
        created_at = _current_timestamp()
        with self._lock:
            log = DeliveryLog(id=next(self._delivery_log_ids), created_at=created_at, **new_log.as_values())
            self._delivery_logs[log.id] = log
        return log

    def get_delivery_logs_by_user(self, user_id: int) -> List[DeliveryLog]:
        with self._lock:
            return [log for log in self._delivery_logs.values() if log.user_id == user_id]

    def list_delivery_logs(self) -> List[DeliveryLog]:
        with self._lock:
            return list(self._delivery_logs.values())

    # ------------------------------------------------------------------
    # Audience queries
    # ------------------------------------------------------------------
    def get_users_by_zodiac_sign(self, sign: Union[str, ZodiacSign]) -> List[User]:
        wanted = sign_value(sign)
        with self._lock:
            return [user for user in self._users.values() if user.zodiac_sign == wanted]

    def get_users_for_daily_delivery(
        self, channel: Optional[Union[str, DeliveryType]] = None
    ) -> List[User]:
        selected = delivery_channel(channel)
        with self._lock:
            return [user for user in self._users.values() if wants_delivery(user, selected)]


__all__ = ["MemoryStorage"]
