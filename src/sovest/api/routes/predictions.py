"""Prediction endpoints: create, edit, delete, read, trending, and evaluation sweeps."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from sovest.api.deps import get_prediction_manager, get_scoring_engine
from sovest.api.routes.shared import format_prediction, format_trending
from sovest.predictions.engine import ScoringEngine
from sovest.predictions.manager import PredictionManager

logger = logging.getLogger(__name__)

router = APIRouter()


# Fields default to None so the domain validator, not pydantic, reports
# missing input with its own error codes.
class CreatePredictionRequest(BaseModel):
    user_id: int
    stock_id: int | None = None
    symbol: str | None = None
    prediction_type: str | None = None
    end_date: str | None = None
    reasoning: str | None = None
    target_price: float | str | None = None


class UpdatePredictionRequest(BaseModel):
    user_id: int | None = None
    stock_id: int | None = None
    symbol: str | None = None
    prediction_type: str | None = None
    end_date: str | None = None
    reasoning: str | None = None
    target_price: float | str | None = None


class EvaluateRequest(BaseModel):
    as_of: str | None = None


@router.post("/predictions", status_code=201)
def create_prediction(
    body: CreatePredictionRequest,
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    prediction = manager.create_prediction(body.user_id, body.model_dump(exclude={"user_id"}))
    return format_prediction(prediction)


@router.get("/predictions/trending")
def trending_predictions(
    limit: int = Query(15, ge=1, le=100),
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    """Active or high-accuracy predictions ranked by upvotes, accuracy, recency."""
    rows = manager.get_trending(limit=limit)
    return {"predictions": [format_trending(r) for r in rows], "count": len(rows)}


@router.post("/predictions/evaluate")
def evaluate_predictions(
    body: EvaluateRequest | None = None,
    engine: ScoringEngine = Depends(get_scoring_engine),
) -> dict:
    """Run an evaluation sweep now. Safe to call while a scheduled sweep runs."""
    as_of = None
    if body is not None and body.as_of:
        try:
            as_of = date.fromisoformat(body.as_of)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date format, use YYYY-MM-DD")
        if as_of > date.today():
            raise HTTPException(status_code=400, detail="as_of cannot be in the future")

    report = engine.evaluate_active_predictions(as_of)
    return {**report.as_dict(), "asOf": (as_of or date.today()).isoformat()}


@router.get("/predictions/{prediction_id}")
def get_prediction(
    prediction_id: int,
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    prediction, tally = manager.get_prediction(prediction_id)
    return format_prediction(prediction, tally)


@router.patch("/predictions/{prediction_id}")
def update_prediction(
    prediction_id: int,
    body: UpdatePredictionRequest,
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    prediction = manager.update_prediction(
        prediction_id,
        body.model_dump(exclude={"user_id"}, exclude_unset=True),
        user_id=body.user_id,
    )
    return format_prediction(prediction)


@router.delete("/predictions/{prediction_id}")
def delete_prediction(
    prediction_id: int,
    user_id: int = Query(...),
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    manager.delete_prediction(prediction_id, user_id)
    return {"id": prediction_id, "status": "deleted"}
