"""Request/response schemas for staff authentication."""

import re

from pydantic import BaseModel, EmailStr, Field, field_validator

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "an upper case letter"),
    (re.compile(r"[a-z]"), "a lower case letter"),
    (re.compile(r"\d"), "a digit"),
)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(v)]
        if missing:
            raise ValueError(f"Password needs {', '.join(missing)}")
        return v


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class StaffInfo(BaseModel):
    user_id: str
    username: str
    email: str
    is_admin: bool
    last_login_at: str | None = None


class RegisterResponse(StaffInfo):
    created_at: str


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: StaffInfo


class RefreshResponse(BaseModel):
    access_token: str
    expires_in: int
