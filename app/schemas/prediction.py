"""Pydantic schemas for prediction endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_BATCH_SIZE = 10


class PredictionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    age: float = Field(ge=1, le=120)
    glucose: float = Field(ge=0, le=300)
    blood_pressure: float = Field(ge=0, le=250)
    skin_thickness: float | None = Field(default=None, ge=0, le=100)
    insulin: float | None = Field(default=None, ge=0, le=1000)
    bmi: float = Field(ge=10, le=70)
    diabetes_pedigree_function: float | None = Field(default=None, ge=0, le=2.5)
    pregnancies: int | None = Field(default=None, ge=0, le=20)


class PredictionResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    age: float
    glucose: float
    blood_pressure: float
    skin_thickness: float | None
    insulin: float | None
    bmi: float
    diabetes_pedigree_function: float | None
    pregnancies: int
    prediction_result: int
    probability: float
    confidence: float
    risk_level: str
    label: str | None
    model_version: str
    predicted_at: datetime


class PredictionListResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: list[PredictionResponse]
    total: int
    page: int
    limit: int
    pages: int


class BatchPredictionRequest(BaseModel):
    """Items are validated one by one so a bad item does not reject the batch."""

    predictions: list[dict[str, Any]] = Field(min_length=1, max_length=MAX_BATCH_SIZE)


class BatchItemResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    index: int
    success: bool
    prediction: PredictionResponse | None = None
    error: str | None = None
    details: list[dict[str, str]] | None = None


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BatchPredictionResponse(BaseModel):
    results: list[BatchItemResult]
    summary: BatchSummary


class ModelFeature(BaseModel):
    name: str
    description: str
    type: str
    range: str
    required: bool


class ModelInfoResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    model_name: str
    model_version: str
    features: list[ModelFeature]
    training_dataset: str
    performance: dict[str, float]
