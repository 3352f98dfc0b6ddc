"""Pydantic schemas for authentication endpoints."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.user import UserResponse


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    email: str
    password: str
    first_name: str
    last_name: str
    phone: str | None = None
    date_of_birth: date | None = None
    gender: Literal["male", "female", "other"] | None = None


class LoginRequest(CamelModel):
    email: str
    password: str


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: str


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class SessionResponse(CamelModel):
    message: str
    user: UserResponse
    token: str
    refresh_token: str
    expires_at: datetime


class RefreshResponse(CamelModel):
    message: str
    token: str
    refresh_token: str
    expires_at: datetime


class MessageResponse(CamelModel):
    message: str
