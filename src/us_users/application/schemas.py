"""Pydantic request/response schemas for us_users.

All responses are wrapped in ApiResponse at the router layer. Request
schemas carry the field-level validation; `UpdateUserRequest` keeps track of
which fields the caller actually sent so absent and empty stay distinct.
"""

import uuid
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from src.us_users.auth.password import MAX_PASSWORD_BYTES
from src.us_users.domain.models import ActivationCode, UpdateFields, User, UserCreate

_EMAIL_MAX_LENGTH = 64


def _check_email_length(v: str) -> str:
    if len(v) > _EMAIL_MAX_LENGTH:
        raise ValueError(f"Email must be at most {_EMAIL_MAX_LENGTH} characters")
    return v


def _check_password_bytes(v: str) -> str:
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
    return v


class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=40)
    password: str = Field(..., min_length=5, max_length=64)
    email: EmailStr
    first_name: str = Field("", max_length=32)
    last_name: str = Field("", max_length=32)
    avatar_id: uuid.UUID | None = None

    @field_validator("email")
    @classmethod
    def email_length(cls, v: str) -> str:
        return _check_email_length(v)

    @field_validator("password")
    @classmethod
    def password_bytes(cls, v: str) -> str:
        return _check_password_bytes(v)

    def to_domain(self) -> UserCreate:
        return UserCreate(
            username=self.username,
            password=self.password,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            avatar_id=str(self.avatar_id) if self.avatar_id is not None else None,
        )


class UpdateUserRequest(BaseModel):
    password: str | None = Field(None, min_length=5, max_length=64)
    email: EmailStr | None = None
    first_name: str | None = Field(None, max_length=32)
    last_name: str | None = Field(None, max_length=32)
    avatar_id: uuid.UUID | None = None

    @field_validator("email")
    @classmethod
    def email_length(cls, v: str | None) -> str | None:
        return _check_email_length(v) if v is not None else v

    @field_validator("password")
    @classmethod
    def password_bytes(cls, v: str | None) -> str | None:
        return _check_password_bytes(v) if v is not None else v

    @model_validator(mode="after")
    def only_avatar_is_nullable(self) -> "UpdateUserRequest":
        """Only avatar_id may be cleared with an explicit null."""
        for name in self.model_fields_set - {"avatar_id"}:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def to_domain(self) -> UpdateFields:
        supplied: dict[str, Any] = self.model_dump(exclude_unset=True)
        if supplied.get("avatar_id") is not None:
            supplied["avatar_id"] = str(supplied["avatar_id"])
        return UpdateFields(**supplied)


class GetManyUsersRequest(BaseModel):
    usernames: list[str] = Field(..., max_length=1000)


class CredentialsRequest(BaseModel):
    username: str
    password: str


class ActivateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class UserData(BaseModel):
    """Outgoing user shape: empty names become absent, no password hash."""

    username: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    avatar_id: str | None = None
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "UserData":
        return cls(
            username=user.username,
            email=user.email,
            first_name=user.first_name or None,
            last_name=user.last_name or None,
            avatar_id=user.avatar_id,
            is_active=user.is_active,
        )


class GetManyUsersResponse(BaseModel):
    users: list[UserData]
    missing: list[str] = Field(default_factory=list)


class ActivationCodeResponse(BaseModel):
    username: str
    code: str
    expires_at: str

    @classmethod
    def from_code(cls, code: ActivationCode) -> "ActivationCodeResponse":
        return cls(
            username=code.username,
            code=code.code,
            expires_at=code.expires_at.isoformat(),
        )
