"""Prediction API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import AuthContext, get_prediction_service, optional_auth
from app.errors import ApiError, ErrorKind, validation_details
from app.rate_limit import limiter
from app.schemas.prediction import (
    BatchItemResult,
    BatchPredictionRequest,
    BatchPredictionResponse,
    BatchSummary,
    ModelInfoResponse,
    PredictionRequest,
    PredictionResponse,
)
from app.services.prediction import PredictionService

logger = logging.getLogger("diabeacheck")

router = APIRouter(prefix="/api/predict", tags=["Predictions"])


@router.post("", response_model=PredictionResponse)
@limiter.limit("10/minute")
def predict(
    request: Request,
    body: PredictionRequest,
    ctx: AuthContext | None = Depends(optional_auth),
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
) -> PredictionResponse:
    """Run a diabetes risk prediction. Anonymous callers are recorded without a user."""
    result = service.predict(
        db,
        features=body.model_dump(),
        user_id=ctx.user_id if ctx else None,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )
    if not result.success:
        raise ApiError(result.error or ErrorKind.INTERNAL_FAILURE, result.message or "Prediction failed")
    return PredictionResponse.model_validate(result.record)


@router.post("/batch", response_model=BatchPredictionResponse)
@limiter.limit("5/minute")
def predict_batch(
    request: Request,
    body: BatchPredictionRequest,
    ctx: AuthContext | None = Depends(optional_auth),
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
) -> BatchPredictionResponse:
    """Run up to ten predictions. Each item succeeds or fails on its own."""
    user_id = ctx.user_id if ctx else None
    results = []
    for index, item in enumerate(body.predictions):
        try:
            features = PredictionRequest.model_validate(item)
        except ValidationError as e:
            results.append(
                BatchItemResult(
                    index=index,
                    success=False,
                    error="Validation failed",
                    details=validation_details(e.errors()),
                )
            )
            continue

        result = service.predict(
            db,
            features=features.model_dump(),
            user_id=user_id,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent"),
        )
        if result.success:
            results.append(
                BatchItemResult(index=index, success=True, prediction=PredictionResponse.model_validate(result.record))
            )
        else:
            results.append(BatchItemResult(index=index, success=False, error=result.message))

    successful = sum(1 for r in results if r.success)
    summary = BatchSummary(total=len(results), successful=successful, failed=len(results) - successful)
    logger.info(
        "Batch prediction completed: user_id=%s total=%d successful=%d", user_id, summary.total, summary.successful
    )
    return BatchPredictionResponse(results=results, summary=summary)


@router.get("/model-info", response_model=ModelInfoResponse)
def model_info(service: PredictionService = Depends(get_prediction_service)) -> ModelInfoResponse:
    """Describe the prediction model and the features it accepts."""
    return ModelInfoResponse.model_validate(service.model_info())


@router.get("/service-health")
def service_health(service: PredictionService = Depends(get_prediction_service)) -> dict:
    """Report whether the external ML service is reachable."""
    return service.client.health_check()
