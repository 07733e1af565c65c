from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import psycopg

from sovest.errors import (
    PredictionNotEditable,
    PredictionNotFound,
    UserNotFound,
    ValidationError,
)
from sovest.models.prediction import Prediction
from sovest.models.user import LeaderboardEntry, User, UserPredictionStats
from sovest.models.vote import VoteTally
from sovest.predictions.validator import PredictionValidator
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)

TRENDING_MIN_ACCURACY = 70


class PredictionManager:
    """Handles the user-facing prediction lifecycle: create, edit, delete, read."""

    def __init__(
        self, registry: Registry, validator: PredictionValidator | None = None
    ) -> None:
        self._registry = registry
        self._validator = validator or PredictionValidator(registry)

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    def create_prediction(self, user_id: int, payload: Mapping[str, Any]) -> Prediction:
        """Validate and store a new active prediction for a user."""
        if not self._registry.user_exists(user_id):
            raise UserNotFound(user_id)

        draft = self._validator.validate_create(payload)
        prediction_id = self._registry.insert_prediction(user_id, draft)
        logger.info(
            "User %s predicted %s on stock %s until %s (prediction %s)",
            user_id, draft.direction.value, draft.stock_id, draft.end_date, prediction_id,
        )
        return self._load(prediction_id)

    def update_prediction(
        self,
        prediction_id: int,
        payload: Mapping[str, Any],
        user_id: int | None = None,
    ) -> Prediction:
        """Edit an active prediction.

        When user_id is given the prediction must belong to that user. The
        write only matches an active row; losing a race with the scoring
        engine raises PredictionNotEditable.
        """
        existing = self._registry.get_prediction(prediction_id)
        if existing is None or (user_id is not None and existing.user_id != user_id):
            raise PredictionNotFound(prediction_id)

        draft = self._validator.validate_update(existing, payload)
        if not self._registry.update_active_prediction(prediction_id, draft):
            raise PredictionNotEditable(prediction_id)
        logger.info("Prediction %s updated", prediction_id)
        return self._load(prediction_id)

    def delete_prediction(self, prediction_id: int, user_id: int) -> None:
        if not self._registry.delete_prediction(prediction_id, user_id):
            raise PredictionNotFound(prediction_id)
        logger.info("Prediction %s deleted by user %s", prediction_id, user_id)

    def get_prediction(self, prediction_id: int) -> tuple[Prediction, VoteTally]:
        prediction = self._registry.get_prediction(prediction_id)
        if prediction is None:
            raise PredictionNotFound(prediction_id)
        return prediction, self._registry.get_vote_tally(prediction_id)

    def get_user_predictions(self, user_id: int) -> list[Prediction]:
        if not self._registry.user_exists(user_id):
            raise UserNotFound(user_id)
        return self._registry.get_user_predictions(user_id)

    def get_trending(self, limit: int = 15) -> list[dict]:
        """Active or well-scored predictions, most upvoted first."""
        return self._registry.get_trending_predictions(
            limit=limit, min_accuracy=TRENDING_MIN_ACCURACY
        )

    # ------------------------------------------------------------------
    # Users & reputation reads
    # ------------------------------------------------------------------

    def register_user(self, email: str, first_name: str = "", last_name: str = "") -> User:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError(f"A valid email address is required, got {email!r}")

        user = User(email=email, first_name=first_name.strip(), last_name=last_name.strip())
        try:
            user.id = self._registry.create_user(user)
        except psycopg.errors.UniqueViolation:
            raise ValidationError(f"Email {email} is already registered") from None
        logger.info("Registered user %s", user.id)
        return user

    def get_user(self, user_id: int) -> User:
        user = self._registry.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def get_leaderboard(self, limit: int = 10) -> list[LeaderboardEntry]:
        return self._registry.get_leaderboard(limit)

    def get_user_stats(self, user_id: int) -> UserPredictionStats:
        stats = self._registry.get_user_prediction_stats(user_id)
        if stats is None:
            raise UserNotFound(user_id)
        return stats

    def _load(self, prediction_id: int) -> Prediction:
        prediction = self._registry.get_prediction(prediction_id)
        if prediction is None:
            raise PredictionNotFound(prediction_id)
        return prediction
