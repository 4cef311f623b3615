"""Entity records and creation payloads for the horoscope store."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union


class ZodiacSign(str, Enum):
    ARIES = "aries"
    TAURUS = "taurus"
    GEMINI = "gemini"
    CANCER = "cancer"
    LEO = "leo"
    VIRGO = "virgo"
    LIBRA = "libra"
    SCORPIO = "scorpio"
    SAGITTARIUS = "sagittarius"
    CAPRICORN = "capricorn"
    AQUARIUS = "aquarius"
    PISCES = "pisces"


class DeliveryType(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class DeliveryStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


def _enum_value(enum_cls: type[Enum], value: Union[str, Enum], label: str) -> str:
    if isinstance(value, enum_cls):
        return str(value.value)
    try:
        return str(enum_cls(value).value)
    except ValueError as exc:
        raise ValueError(f"Unknown {label}: {value!r}") from exc


def normalize_zodiac_sign(value: Union[str, ZodiacSign]) -> str:
    """Return the canonical stored value for a zodiac sign."""

    return _enum_value(ZodiacSign, value, "zodiac sign")


def sign_value(value: Union[str, ZodiacSign]) -> str:
    """Return the raw value used for sign comparisons, without validation.

    Lookups compare case-sensitively and never raise for unknown signs.
    """

    if isinstance(value, ZodiacSign):
        return value.value
    return str(value)


def normalize_date(value: Union[str, date]) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class User:
    """A subscriber of the daily horoscope."""

    id: int
    email: str
    zodiac_sign: str
    password: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    birthdate: Optional[str]
    phone: Optional[str]
    sms_opt_in: bool
    newsletter_opt_in: bool
    created_at: datetime


@dataclass(frozen=True)
class Horoscope:
    id: int
    zodiac_sign: str
    date: str
    content: Dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class DeliveryLog:
    id: int
    user_id: int
    horoscope_id: int
    delivery_type: str
    status: str
    created_at: datetime


@dataclass(frozen=True)
class NewUser:
    """Fields supplied by a caller when registering a user.

    Optional profile fields default to ``None``; the opt-in flags default to
    ``sms_opt_in=False`` and ``newsletter_opt_in=True``.
    """

    email: str
    zodiac_sign: str
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    birthdate: Optional[str] = None
    phone: Optional[str] = None
    sms_opt_in: bool = False
    newsletter_opt_in: bool = True

    def __post_init__(self) -> None:
        if not self.email:
            raise ValueError("Email must not be empty")
        object.__setattr__(self, "zodiac_sign", normalize_zodiac_sign(self.zodiac_sign))
        object.__setattr__(self, "sms_opt_in", bool(self.sms_opt_in))
        object.__setattr__(self, "newsletter_opt_in", bool(self.newsletter_opt_in))

    def as_values(self) -> Dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(frozen=True)
class NewHoroscope:
    zodiac_sign: str
    date: str
    content: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "zodiac_sign", normalize_zodiac_sign(self.zodiac_sign))
        object.__setattr__(self, "date", normalize_date(self.date))
        if not self.date:
            raise ValueError("Horoscope date must not be empty")
        if not isinstance(self.content, Mapping):
            raise ValueError("Horoscope content must be a JSON object")
        object.__setattr__(self, "content", copy.deepcopy(dict(self.content)))

    def as_values(self) -> Dict[str, Any]:
        return {
            "zodiac_sign": self.zodiac_sign,
            "date": self.date,
            "content": copy.deepcopy(self.content),
        }


@dataclass(frozen=True)
class NewDeliveryLog:
    user_id: int
    horoscope_id: int
    delivery_type: str
    status: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "delivery_type", _enum_value(DeliveryType, self.delivery_type, "delivery type"))
        object.__setattr__(self, "status", _enum_value(DeliveryStatus, self.status, "delivery status"))

    def as_values(self) -> Dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


_USER_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})
_USER_NULLABLE_FIELDS = frozenset({"password", "first_name", "last_name", "birthdate", "phone"})
USER_UPDATABLE_FIELDS = frozenset(item.name for item in fields(NewUser))


def user_changes(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Filter a partial update down to the fields that may change.

    ``id`` and ``created_at`` are dropped, ``None`` is ignored for columns
    that cannot be null, and unknown names raise :class:`ValueError`.
    """

    unknown = set(updates) - USER_UPDATABLE_FIELDS - _USER_IMMUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")

    changes: Dict[str, Any] = {}
    for name, value in updates.items():
        if name in _USER_IMMUTABLE_FIELDS:
            continue
        if value is None and name not in _USER_NULLABLE_FIELDS:
            continue
        if name == "zodiac_sign":
            value = normalize_zodiac_sign(value)
        elif name in {"sms_opt_in", "newsletter_opt_in"}:
            value = bool(value)
        elif name == "email" and not value:
            raise ValueError("Email must not be empty")
        changes[name] = value
    return changes


__all__ = [
    "DeliveryLog",
    "DeliveryStatus",
    "DeliveryType",
    "Horoscope",
    "NewDeliveryLog",
    "NewHoroscope",
    "NewUser",
    "USER_UPDATABLE_FIELDS",
    "User",
    "ZodiacSign",
    "normalize_date",
    "normalize_zodiac_sign",
    "sign_value",
    "user_changes",
]
