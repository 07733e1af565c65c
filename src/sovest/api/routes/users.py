"""User registration, leaderboard, and per-user prediction endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sovest.api.deps import get_prediction_manager
from sovest.api.routes.shared import format_prediction
from sovest.predictions.manager import PredictionManager

router = APIRouter()


class RegisterUserRequest(BaseModel):
    email: str
    first_name: str = ""
    last_name: str = ""


@router.post("/users", status_code=201)
def register_user(
    body: RegisterUserRequest,
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    user = manager.register_user(body.email, body.first_name, body.last_name)
    return {
        "id": user.id,
        "email": user.email,
        "displayName": user.display_name,
        "reputationScore": user.reputation_score,
    }


@router.get("/users/leaderboard")
def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    """Top users by reputation.

    Response shape: {users: [{userId, displayName, reputationScore,
    predictionsCount, avgAccuracy}]}
    """
    entries = manager.get_leaderboard(limit)
    return {
        "users": [
            {
                "userId": e.user_id,
                "displayName": e.display_name,
                "reputationScore": e.reputation_score,
                "predictionsCount": e.predictions_count,
                "avgAccuracy": float(e.avg_accuracy),
            }
            for e in entries
        ]
    }


@router.get("/users/{user_id}")
def get_user(
    user_id: int,
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    user = manager.get_user(user_id)
    return {
        "id": user.id,
        "displayName": user.display_name,
        "reputationScore": user.reputation_score,
        "memberSince": user.created_at.isoformat() if user.created_at else None,
    }


@router.get("/users/{user_id}/stats")
def user_stats(
    user_id: int,
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    stats = manager.get_user_stats(user_id)
    return {
        "userId": stats.user_id,
        "total": stats.total,
        "accurate": stats.accurate,
        "inaccurate": stats.inaccurate,
        "pending": stats.pending,
        "avgAccuracy": float(stats.avg_accuracy),
        "reputation": stats.reputation,
    }


@router.get("/users/{user_id}/predictions")
def user_predictions(
    user_id: int,
    manager: PredictionManager = Depends(get_prediction_manager),
) -> dict:
    predictions = manager.get_user_predictions(user_id)
    return {
        "predictions": [format_prediction(p) for p in predictions],
        "count": len(predictions),
    }
