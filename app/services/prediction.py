"""Prediction service: proxy to the external ML API and prediction history."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.errors import ErrorKind
from app.models.prediction import PredictionRecord

logger = logging.getLogger("diabeacheck")

HIGH_RISK_THRESHOLD = 0.7
MODERATE_RISK_THRESHOLD = 0.3

MODEL_NAME = "Random Forest Classifier"
TRAINING_DATASET = "NHANES + Pima Indians Diabetes Dataset"
MODEL_PERFORMANCE = {"accuracy": 0.85, "precision": 0.82, "recall": 0.78, "f1Score": 0.8, "auc": 0.87}

# (name, description, type, range, required)
MODEL_FEATURES = [
    ("age", "Age in years", "numeric", "1-120", True),
    ("glucose", "Plasma glucose concentration", "numeric", "0-300 mg/dL", True),
    ("bloodPressure", "Diastolic blood pressure", "numeric", "0-250 mmHg", True),
    ("skinThickness", "Triceps skin fold thickness", "numeric", "0-100 mm", False),
    ("insulin", "2-Hour serum insulin", "numeric", "0-1000 mu U/ml", False),
    ("bmi", "Body mass index", "numeric", "10-70", True),
    ("diabetesPedigreeFunction", "Diabetes pedigree function", "numeric", "0.0-2.5", False),
    ("pregnancies", "Number of times pregnant", "integer", "0-20", False),
]


class PredictionUnavailable(Exception):
    """The ML service could not produce a prediction."""


@dataclass
class ModelOutput:
    """Classification returned by the ML service."""

    prediction: int
    probability: float
    label: str | None = None

    @property
    def risk_level(self) -> str:
        if self.probability >= HIGH_RISK_THRESHOLD:
            return "High"
        if self.probability >= MODERATE_RISK_THRESHOLD:
            return "Moderate"
        return "Low"

    @property
    def confidence(self) -> float:
        return self.probability if self.probability > 0.5 else 1 - self.probability


class PredictionClient:
    """HTTP client for the external ML prediction API."""

    def __init__(self, base_url: str, timeout: float = 30.0, transport: httpx.BaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            transport=transport,
        )

    def predict(self, features: dict[str, Any]) -> ModelOutput:
        """Send features to the ML API. Raises PredictionUnavailable on any failure."""
        payload = {
            "Age": features.get("age") or 0,
            "BMI": features.get("bmi") or 0,
            "Glucose": features.get("glucose") or 0,
            "Insulin": features.get("insulin") or 0,
            "BloodPressure": features.get("blood_pressure") or 0,
        }
        try:
            response = self._client.post("/predict/", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error("ML API timed out: url=%s", self.base_url)
            raise PredictionUnavailable("Prediction service did not respond in time") from e
        except httpx.TransportError as e:
            logger.error("ML API unreachable: url=%s error=%s", self.base_url, e)
            raise PredictionUnavailable("Prediction service is unreachable") from e
        except httpx.HTTPStatusError as e:
            logger.error("ML API error: status=%d", e.response.status_code)
            raise PredictionUnavailable(f"Prediction service error ({e.response.status_code})") from e
        except ValueError as e:
            raise PredictionUnavailable("Prediction service returned an invalid response") from e

        try:
            output = ModelOutput(
                prediction=int(data["prediction"]),
                probability=float(data["probability"]),
                label=data.get("label"),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PredictionUnavailable("Prediction service returned an invalid response") from e
        if not 0.0 <= output.probability <= 1.0:
            raise PredictionUnavailable("Prediction service returned an invalid response")
        return output

    def health_check(self) -> dict[str, Any]:
        """Probe the ML API."""
        try:
            response = self._client.get("/docs", timeout=5.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            return {"status": "unhealthy", "url": self.base_url, "error": str(e)}
        return {"status": "healthy", "url": self.base_url}

    def close(self) -> None:
        self._client.close()


@dataclass
class PredictionResult:
    """Result of a prediction or history lookup."""

    success: bool
    error: ErrorKind | None = None
    message: str | None = None
    record: PredictionRecord | None = None


class PredictionService:
    """Runs predictions and manages the prediction history."""

    def __init__(self, client: PredictionClient, model_version: str) -> None:
        self.client = client
        self.model_version = model_version

    def predict(
        self,
        db: Session,
        features: dict[str, Any],
        user_id: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> PredictionResult:
        """Get a prediction from the ML API and store it. ``user_id`` is None for anonymous callers."""
        try:
            output = self.client.predict(features)
        except PredictionUnavailable as e:
            return PredictionResult(success=False, error=ErrorKind.PREDICTION_UNAVAILABLE, message=str(e))

        record = PredictionRecord(
            user_id=user_id,
            age=features["age"],
            glucose=features["glucose"],
            blood_pressure=features["blood_pressure"],
            skin_thickness=features.get("skin_thickness"),
            insulin=features.get("insulin"),
            bmi=features["bmi"],
            diabetes_pedigree_function=features.get("diabetes_pedigree_function"),
            pregnancies=features.get("pregnancies") or 0,
            prediction_result=output.prediction,
            probability=output.probability,
            confidence=output.confidence,
            risk_level=output.risk_level,
            label=output.label,
            model_version=self.model_version,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            db.add(record)
            db.commit()
            db.refresh(record)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to store prediction: user_id=%s", user_id)
            return PredictionResult(
                success=False, error=ErrorKind.INTERNAL_FAILURE, message="Unable to store prediction"
            )

        logger.info(
            "Prediction completed: prediction_id=%s user_id=%s risk_level=%s",
            record.id,
            user_id,
            record.risk_level,
        )
        return PredictionResult(success=True, record=record)

    def list_for_user(
        self, db: Session, user_id: int, limit: int = 10, offset: int = 0
    ) -> tuple[list[PredictionRecord], int]:
        """Get a page of a user's predictions, newest first. Returns (items, total_count)."""
        query = db.query(PredictionRecord).filter(PredictionRecord.user_id == user_id)
        total = query.count()
        items = (
            query.order_by(PredictionRecord.predicted_at.desc(), PredictionRecord.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def get_for_user(self, db: Session, prediction_id: int, user_id: int) -> PredictionResult:
        """Fetch a prediction, distinguishing missing records from other users' records."""
        record = db.get(PredictionRecord, prediction_id)
        if record is None:
            return PredictionResult(success=False, error=ErrorKind.NOT_FOUND, message="Prediction not found")
        if record.user_id != user_id:
            return PredictionResult(
                success=False,
                error=ErrorKind.FORBIDDEN,
                message="You don't have permission to access this prediction",
            )
        return PredictionResult(success=True, record=record)

    def delete(self, db: Session, record: PredictionRecord) -> None:
        db.delete(record)
        db.commit()
        logger.info("Prediction deleted: prediction_id=%s user_id=%s", record.id, record.user_id)

    def correct_model_metadata(
        self,
        db: Session,
        record: PredictionRecord,
        confidence: float | None = None,
        model_version: str | None = None,
    ) -> PredictionRecord:
        """The only mutation allowed on a stored prediction."""
        if confidence is not None:
            record.confidence = confidence
        if model_version is not None:
            record.model_version = model_version
        db.commit()
        db.refresh(record)
        return record

    def get_user_stats(self, db: Session, user_id: int) -> dict[str, Any]:
        """Summary counters for a user's prediction history."""

        def risk_count(level: str):
            return func.coalesce(func.sum(case((PredictionRecord.risk_level == level, 1), else_=0)), 0)

        row = (
            db.query(
                func.count(PredictionRecord.id),
                func.avg(PredictionRecord.probability),
                func.max(PredictionRecord.predicted_at),
                risk_count("High"),
                risk_count("Moderate"),
                risk_count("Low"),
            )
            .filter(PredictionRecord.user_id == user_id)
            .one()
        )
        total, avg_probability, last_prediction, high, moderate, low = row
        return {
            "total_predictions": total or 0,
            "avg_probability": float(avg_probability) if avg_probability is not None else None,
            "last_prediction": last_prediction,
            "high_risk_count": int(high),
            "moderate_risk_count": int(moderate),
            "low_risk_count": int(low),
        }

    def model_info(self) -> dict[str, Any]:
        """Describe the model behind the prediction service and its input features."""
        return {
            "model_name": MODEL_NAME,
            "model_version": self.model_version,
            "features": [
                {"name": name, "description": description, "type": kind, "range": span, "required": required}
                for name, description, kind, span, required in MODEL_FEATURES
            ],
            "training_dataset": TRAINING_DATASET,
            "performance": dict(MODEL_PERFORMANCE),
        }


def build_prediction_service(settings: Settings, transport: httpx.BaseTransport | None = None) -> PredictionService:
    client = PredictionClient(settings.ML_API_URL, timeout=settings.ML_API_TIMEOUT_SECONDS, transport=transport)
    return PredictionService(client, settings.MODEL_VERSION)
