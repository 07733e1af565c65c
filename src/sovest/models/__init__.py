from __future__ import annotations

from sovest.models.prediction import (
    Direction,
    EvaluationReport,
    EvaluationResult,
    Prediction,
    PredictionDraft,
)
from sovest.models.stock import PricePoint, Stock
from sovest.models.user import LeaderboardEntry, User, UserPredictionStats
from sovest.models.vote import Vote, VoteTally, VoteType

__all__ = [
    # prediction
    "Direction",
    "Prediction",
    "PredictionDraft",
    "EvaluationResult",
    "EvaluationReport",
    # stock
    "Stock",
    "PricePoint",
    # user
    "User",
    "UserPredictionStats",
    "LeaderboardEntry",
    # vote
    "VoteType",
    "Vote",
    "VoteTally",
]
