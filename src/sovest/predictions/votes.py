from __future__ import annotations

import logging

from sovest.errors import InvalidVoteType, PredictionNotFound, UserNotFound
from sovest.models.vote import Vote, VoteTally, VoteType
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)


class VotingLedger:
    """One up/down vote per (prediction, user). Display only, never scored."""

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    def vote(self, prediction_id: int, user_id: int, vote_type: str | VoteType) -> VoteTally:
        """Record or replace a user's vote and return the new tally."""
        parsed = self._parse_vote_type(vote_type)
        if self._registry.get_prediction(prediction_id) is None:
            raise PredictionNotFound(prediction_id)
        if not self._registry.user_exists(user_id):
            raise UserNotFound(user_id)

        self._registry.upsert_vote(prediction_id, user_id, parsed)
        logger.debug("User %s voted %s on prediction %s", user_id, parsed.value, prediction_id)
        return self._registry.get_vote_tally(prediction_id)

    def retract_vote(self, prediction_id: int, user_id: int) -> VoteTally:
        if self._registry.get_prediction(prediction_id) is None:
            raise PredictionNotFound(prediction_id)
        if not self._registry.delete_vote(prediction_id, user_id):
            logger.debug("No vote by user %s on prediction %s to retract", user_id, prediction_id)
        return self._registry.get_vote_tally(prediction_id)

    def get_tally(self, prediction_id: int) -> VoteTally:
        if self._registry.get_prediction(prediction_id) is None:
            raise PredictionNotFound(prediction_id)
        return self._registry.get_vote_tally(prediction_id)

    def get_user_vote(self, prediction_id: int, user_id: int) -> Vote | None:
        return self._registry.get_vote(prediction_id, user_id)

    @staticmethod
    def _parse_vote_type(value: str | VoteType) -> VoteType:
        if isinstance(value, VoteType):
            return value
        if isinstance(value, str):
            try:
                return VoteType(value.strip().lower())
            except ValueError:
                pass
        raise InvalidVoteType(value)
