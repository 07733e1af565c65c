from __future__ import annotations

from sovest.predictions.engine import ScoringEngine
from sovest.predictions.manager import PredictionManager
from sovest.predictions.validator import PredictionValidator
from sovest.predictions.votes import VotingLedger

__all__ = [
    "PredictionManager",
    "PredictionValidator",
    "ScoringEngine",
    "VotingLedger",
]
