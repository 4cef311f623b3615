"""HTTP API exposing the horoscope store to the web front end."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.exc import IntegrityError

from .models import (
    DeliveryLog,
    DeliveryStatus,
    DeliveryType,
    Horoscope,
    NewDeliveryLog,
    NewHoroscope,
    NewUser,
    User,
    ZodiacSign,
)
from .security import MIN_PASSWORD_LENGTH, hash_password
from .storage import Storage

logger = logging.getLogger("horoscope.service")


class SignupRequest(BaseModel):
    email: EmailStr
    zodiac_sign: ZodiacSign
    password: Optional[str] = Field(default=None, min_length=MIN_PASSWORD_LENGTH, max_length=256)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    birthdate: Optional[date] = None
    phone: Optional[str] = Field(default=None, max_length=32)
    sms_opt_in: bool = False
    newsletter_opt_in: bool = True

    @field_validator("zodiac_sign", mode="before")
    @classmethod
    def _lowercase_sign(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class UserUpdateRequest(BaseModel):
    email: Optional[EmailStr] = None
    zodiac_sign: Optional[ZodiacSign] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    birthdate: Optional[date] = None
    phone: Optional[str] = Field(default=None, max_length=32)
    sms_opt_in: Optional[bool] = None
    newsletter_opt_in: Optional[bool] = None

    @field_validator("zodiac_sign", mode="before")
    @classmethod
    def _lowercase_sign(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class UserResponse(BaseModel):
    id: int
    email: str
    zodiac_sign: str
    first_name: Optional[str]
    last_name: Optional[str]
    birthdate: Optional[str]
    phone: Optional[str]
    sms_opt_in: bool
    newsletter_opt_in: bool
    created_at: datetime


class SignupResponse(BaseModel):
    success: bool
    message: str
    user: UserResponse


class HoroscopeCreateRequest(BaseModel):
    zodiac_sign: ZodiacSign
    date: date
    content: Dict[str, Any] = Field(default_factory=dict)


class HoroscopeResponse(BaseModel):
    id: int
    zodiac_sign: str
    date: str
    content: Dict[str, Any]
    created_at: datetime


class DeliveryLogCreateRequest(BaseModel):
    user_id: int = Field(..., ge=1)
    horoscope_id: int = Field(..., ge=1)
    delivery_type: DeliveryType
    status: DeliveryStatus


class DeliveryLogResponse(BaseModel):
    id: int
    user_id: int
    horoscope_id: int
    delivery_type: str
    status: str
    created_at: datetime


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        zodiac_sign=user.zodiac_sign,
        first_name=user.first_name,
        last_name=user.last_name,
        birthdate=user.birthdate,
        phone=user.phone,
        sms_opt_in=user.sms_opt_in,
        newsletter_opt_in=user.newsletter_opt_in,
        created_at=user.created_at,
    )


def _horoscope_response(horoscope: Horoscope) -> HoroscopeResponse:
    return HoroscopeResponse(
        id=horoscope.id,
        zodiac_sign=horoscope.zodiac_sign,
        date=horoscope.date,
        content=horoscope.content,
        created_at=horoscope.created_at,
    )


def _delivery_log_response(log: DeliveryLog) -> DeliveryLogResponse:
    return DeliveryLogResponse(
        id=log.id,
        user_id=log.user_id,
        horoscope_id=log.horoscope_id,
        delivery_type=log.delivery_type,
        status=log.status,
        created_at=log.created_at,
    )


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def _require_user(storage: Storage, user_id: int) -> User:
    user = storage.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def register_routes(app: FastAPI) -> None:
    """Attach the JSON endpoints to ``app``."""

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
    def signup(
        request: SignupRequest,
        response: Response,
        storage: Storage = Depends(get_storage),
    ) -> SignupResponse:
        existing = storage.get_user_by_email(request.email)
        if existing is not None:
            response.status_code = status.HTTP_200_OK
            return SignupResponse(
                success=True,
                message="Welcome back! We'll continue sending your daily horoscopes.",
                user=_user_response(existing),
            )

        try:
            user = storage.create_user(
                NewUser(
                    email=request.email,
                    zodiac_sign=request.zodiac_sign,
                    password=hash_password(request.password) if request.password else None,
                    first_name=request.first_name,
                    last_name=request.last_name,
                    birthdate=request.birthdate.isoformat() if request.birthdate else None,
                    phone=request.phone,
                    sms_opt_in=request.sms_opt_in,
                    newsletter_opt_in=request.newsletter_opt_in,
                )
            )
        except IntegrityError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A user with that email already exists") from exc
        logger.info("Registered user %s (%s)", user.id, user.zodiac_sign)
        return SignupResponse(
            success=True,
            message="Successfully signed up for daily health horoscopes!",
            user=_user_response(user),
        )

    @app.get("/api/users/{user_id}", response_model=UserResponse)
    def read_user(user_id: int, storage: Storage = Depends(get_storage)) -> UserResponse:
        return _user_response(_require_user(storage, user_id))

    @app.patch("/api/users/{user_id}", response_model=UserResponse)
    def update_user(
        user_id: int,
        request: UserUpdateRequest,
        storage: Storage = Depends(get_storage),
    ) -> UserResponse:
        changes = request.model_dump(exclude_unset=True)
        if isinstance(changes.get("birthdate"), date):
            changes["birthdate"] = changes["birthdate"].isoformat()
        try:
            user = storage.update_user(user_id, **changes)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except IntegrityError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A user with that email already exists") from exc
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return _user_response(user)

    @app.get("/api/users/{user_id}/delivery-logs", response_model=List[DeliveryLogResponse])
    def read_delivery_logs(user_id: int, storage: Storage = Depends(get_storage)) -> List[DeliveryLogResponse]:
        _require_user(storage, user_id)
        return [_delivery_log_response(log) for log in storage.get_delivery_logs_by_user(user_id)]

    @app.get("/api/horoscopes/{sign}", response_model=HoroscopeResponse)
    def read_horoscope(
        sign: str,
        day: Optional[date] = Query(default=None, alias="date"),
        storage: Storage = Depends(get_storage),
    ) -> HoroscopeResponse:
        try:
            zodiac_sign = ZodiacSign(sign.strip().lower())
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid zodiac sign") from exc

        target = day or datetime.now(timezone.utc).date()
        horoscope = storage.get_horoscope_by_sign_and_date(zodiac_sign, target)
        if horoscope is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Horoscope not found")
        return _horoscope_response(horoscope)

    @app.post("/api/horoscopes", response_model=HoroscopeResponse, status_code=status.HTTP_201_CREATED)
    def create_horoscope(
        request: HoroscopeCreateRequest,
        storage: Storage = Depends(get_storage),
    ) -> HoroscopeResponse:
        horoscope = storage.create_horoscope(
            NewHoroscope(zodiac_sign=request.zodiac_sign, date=request.date, content=request.content)
        )
        logger.info("Stored horoscope %s for %s on %s", horoscope.id, horoscope.zodiac_sign, horoscope.date)
        return _horoscope_response(horoscope)

    @app.post("/api/delivery-logs", response_model=DeliveryLogResponse, status_code=status.HTTP_201_CREATED)
    def create_delivery_log(
        request: DeliveryLogCreateRequest,
        storage: Storage = Depends(get_storage),
    ) -> DeliveryLogResponse:
        _require_user(storage, request.user_id)
        log = storage.create_delivery_log(
            NewDeliveryLog(
                user_id=request.user_id,
                horoscope_id=request.horoscope_id,
                delivery_type=request.delivery_type,
                status=request.status,
            )
        )
        return _delivery_log_response(log)

    @app.get("/api/delivery/candidates", response_model=List[UserResponse])
    def delivery_candidates(
        channel: Optional[DeliveryType] = None,
        storage: Storage = Depends(get_storage),
    ) -> List[UserResponse]:
        return [_user_response(user) for user in storage.get_users_for_daily_delivery(channel)]


def create_app(*, storage: Storage) -> FastAPI:
    """Instantiate the FastAPI application around an existing storage instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        storage.session_store.start_pruning()
        try:
            yield
        finally:
            storage.close()
            logger.info("Storage closed")

    app = FastAPI(
        title="Horoscope Store API",
        version="0.1.0",
        description="Subscriber, horoscope and delivery records for the daily wellness horoscope.",
        lifespan=lifespan,
    )
    app.state.storage = storage
    register_routes(app)
    return app


__all__ = ["create_app", "get_storage", "register_routes"]
