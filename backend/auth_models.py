"""
Domain results and Pydantic models for authentication APIs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuthErrorCode(str, Enum):
    VALIDATION_FAILED = "validation_failed"
    DUPLICATE_ACCOUNT = "duplicate_account"
    NOT_FOUND = "not_found"
    INVALID_CREDENTIAL = "invalid_credential"
    SESSION_DESTROY_FAILED = "session_destroy_failed"


class FieldError(BaseModel):
    field: str
    message: str
    code: AuthErrorCode = Field(default=AuthErrorCode.VALIDATION_FAILED, exclude=True)


@dataclass(frozen=True)
class User:
    id: int
    username: str
    email: str
    password_hash: str = field(repr=False)
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Any) -> "User":
        return cls(
            id=int(row["id"]),
            username=str(row["username"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
        )


@dataclass(frozen=True)
class AuthResult:
    """
    Outcome of register/login: either a user or a non-empty list of field
    errors, never both.
    """

    user: User | None = None
    errors: tuple[FieldError, ...] = ()

    def __post_init__(self) -> None:
        if (self.user is None) == (not self.errors):
            raise ValueError("AuthResult needs exactly one of user or errors.")

    @classmethod
    def success(cls, user: User) -> "AuthResult":
        return cls(user=user)

    @classmethod
    def failure(cls, *errors: FieldError) -> "AuthResult":
        return cls(errors=tuple(errors))

    @property
    def ok(self) -> bool:
        return self.user is not None


class UsernamePasswordInput(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username_or_email: str = Field(alias="usernameOrEmail")
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    created_at: str
    updated_at: str


class UserEnvelope(BaseModel):
    errors: list[FieldError] | None = None
    user: UserResponse | None = None


class MeResponse(BaseModel):
    user: UserResponse | None = None


class OkResponse(BaseModel):
    ok: bool
