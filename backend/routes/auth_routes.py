import re
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from backend.auth.dependencies import (
    get_current_user,
    get_hasher,
    get_token_service,
    get_user_repository,
)
from backend.auth.jwt_handler import TokenService
from backend.auth.passwords import MAX_PASSWORD_BYTES, Hasher
from backend.core.rate_limit import auth_limiter
from backend.core.timeutil import as_utc
from backend.domain import Identity, UserRecord
from backend.repositories.base import UserRepository
from backend.services.auth_service import AuthService, normalize_email

router = APIRouter(tags=["auth"])

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6


def _validate_email(value: str) -> str:
    normalized = normalize_email(value)
    if not normalized:
        raise ValueError("Email is required")
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("Please enter a valid email")
    return normalized


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required")
        if len(normalized) < MIN_NAME_LENGTH:
            raise ValueError(f"Name must be at least {MIN_NAME_LENGTH} characters")
        return normalized

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value


class UserResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    email: str
    role: str
    created_at: datetime | None = None


def serialize_user(user: UserRecord | Identity) -> dict:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        created_at=as_utc(user.created_at),
    ).model_dump(by_alias=True, mode="json")


def get_auth_service(
    users: UserRepository = Depends(get_user_repository),
    hasher: Hasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_token_service),
) -> AuthService:
    return AuthService(users, hasher, tokens)


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(auth_limiter)])
def register(data: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    user, token = service.register(data.name, data.email, data.password)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": serialize_user(user),
        "token": token,
    }


@router.post("/login", dependencies=[Depends(auth_limiter)])
def login(data: LoginRequest, service: AuthService = Depends(get_auth_service)):
    user, token = service.login(data.email, data.password)
    return {
        "success": True,
        "message": "Login successful",
        "data": serialize_user(user),
        "token": token,
    }


@router.get("/profile")
def profile(current_user: Identity = Depends(get_current_user)):
    return {"success": True, "data": serialize_user(current_user)}
