"""Pydantic schemas for user and profile data."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UserResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: str | None
    date_of_birth: date | None
    gender: str | None
    email_verified: bool
    status: str
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ProfileResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    height_cm: float | None
    weight_kg: float | None
    blood_type: str | None
    medical_conditions: list[str] | None
    medications: list[str] | None
    allergies: list[str] | None
    updated_at: datetime


class PredictionStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_predictions: int
    avg_probability: float | None
    last_prediction: datetime | None
    high_risk_count: int
    moderate_risk_count: int
    low_risk_count: int


class MeResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user: UserResponse
    profile: ProfileResponse | None
    stats: PredictionStats


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    gender: Literal["male", "female", "other"] | None = None
    height_cm: float | None = Field(default=None, gt=0, le=300)
    weight_kg: float | None = Field(default=None, gt=0, le=700)
    blood_type: Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"] | None = None
    medical_conditions: list[str] | None = None
    medications: list[str] | None = None
    allergies: list[str] | None = None


class ProfileUpdateResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str
    user: UserResponse
    profile: ProfileResponse | None
