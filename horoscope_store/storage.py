"""Storage contract shared by every backend.

``MemoryStorage`` and ``DatabaseStorage`` implement this interface with the
same observable behaviour; they differ only in durability. Callers receive a
single instance built at start-up (see :func:`horoscope_store.factory.create_storage`)
and never reach into a backend directly.

Lookups report absence with ``None`` (or an empty list) rather than raising.
Write operations propagate backend failures unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, List, Optional, Union

from .models import (
    DeliveryLog,
    DeliveryType,
    Horoscope,
    NewDeliveryLog,
    NewHoroscope,
    NewUser,
    User,
    ZodiacSign,
)
from .sessions import SessionStore


class Storage(ABC):
    """Abstract repository for users, horoscopes and delivery logs."""

    session_store: SessionStore

    def initialize(self) -> None:
        """Prepare the backing store. Safe to call more than once."""

    def close(self) -> None:
        self.session_store.close()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def create_user(self, new_user: NewUser) -> User:
        pass

    @abstractmethod
    def update_user(self, user_id: int, **fields: Any) -> Optional[User]:
        """Apply the supplied fields to an existing user.

        ``id`` and ``created_at`` are never modified. Returns ``None`` when no
        user has the given id. The fields are validated first, so an unknown
        field name or invalid value raises ``ValueError`` even when the id is
        missing.
        """

    @abstractmethod
    def list_users(self) -> List[User]:
        pass

    # ------------------------------------------------------------------
    # Horoscopes
    # ------------------------------------------------------------------
    @abstractmethod
    def get_horoscope(self, horoscope_id: int) -> Optional[Horoscope]:
        pass

    @abstractmethod
    def get_horoscope_by_sign_and_date(
        self, sign: Union[str, ZodiacSign], day: Union[str, date]
    ) -> Optional[Horoscope]:
        """Return the horoscope for ``sign`` on ``day``.

        If several records share the key, which one is returned is not
        defined.
        """

    @abstractmethod
    def create_horoscope(self, new_horoscope: NewHoroscope) -> Horoscope:
        pass

    @abstractmethod
    def list_horoscopes(self) -> List[Horoscope]:
        pass

    # ------------------------------------------------------------------
    # Delivery logs
    # ------------------------------------------------------------------
    @abstractmethod
    def create_delivery_log(self, new_log: NewDeliveryLog) -> DeliveryLog:
        pass

    @abstractmethod
    def get_delivery_logs_by_user(self, user_id: int) -> List[DeliveryLog]:
        pass

    @abstractmethod
    def list_delivery_logs(self) -> List[DeliveryLog]:
        pass

    # ------------------------------------------------------------------
    # Audience queries
    # ------------------------------------------------------------------
    @abstractmethod
    def get_users_by_zodiac_sign(self, sign: Union[str, ZodiacSign]) -> List[User]:
        pass

    @abstractmethod
    def get_users_for_daily_delivery(
        self, channel: Optional[Union[str, DeliveryType]] = None
    ) -> List[User]:
        """Return the candidates for the daily push.

        Without ``channel`` every user is returned. ``email`` keeps users with
        ``newsletter_opt_in`` set; ``sms`` keeps users with ``sms_opt_in`` set
        and a phone number on file.
        """


def delivery_channel(channel: Optional[Union[str, DeliveryType]]) -> Optional[DeliveryType]:
    if channel is None:
        return None
    try:
        return DeliveryType(channel)
    except ValueError as exc:
        raise ValueError(f"Unknown delivery channel: {channel!r}") from exc


def wants_delivery(user: User, channel: Optional[DeliveryType]) -> bool:
    if channel is None:
        return True
    if channel is DeliveryType.EMAIL:
        return user.newsletter_opt_in
    return user.sms_opt_in and bool(user.phone)


__all__ = ["Storage", "delivery_channel", "wants_delivery"]
