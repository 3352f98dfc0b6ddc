"""Prediction history endpoints for the authenticated user."""

import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import AuthContext, get_prediction_service, require_auth
from app.errors import ApiError, ErrorKind
from app.schemas.prediction import PredictionListResponse, PredictionResponse
from app.services.prediction import PredictionResult, PredictionService

router = APIRouter(prefix="/api/user", tags=["User"])


def _record_or_raise(result: PredictionResult):
    if not result.success:
        raise ApiError(result.error or ErrorKind.INTERNAL_FAILURE, result.message or "Request failed")
    return result.record


@router.get("/predictions", response_model=PredictionListResponse)
def list_predictions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
) -> PredictionListResponse:
    """List the current user's predictions, newest first."""
    items, total = service.list_for_user(db, ctx.user_id, limit=limit, offset=(page - 1) * limit)
    return PredictionListResponse(
        items=[PredictionResponse.model_validate(p) for p in items],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit),
    )


@router.get("/predictions/{prediction_id}", response_model=PredictionResponse)
def get_prediction(
    prediction_id: int,
    ctx: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
) -> PredictionResponse:
    """Get a single prediction owned by the current user."""
    record = _record_or_raise(service.get_for_user(db, prediction_id, ctx.user_id))
    return PredictionResponse.model_validate(record)


@router.delete("/predictions/{prediction_id}")
def delete_prediction(
    prediction_id: int,
    ctx: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
) -> dict:
    """Delete a prediction owned by the current user."""
    record = _record_or_raise(service.get_for_user(db, prediction_id, ctx.user_id))
    service.delete(db, record)
    return {"message": "Prediction deleted successfully"}
