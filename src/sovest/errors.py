"""Domain exceptions.

ValidationError subclasses are raised synchronously to callers and are
never retried. EvaluationError subclasses are raised by the scoring engine
for a single prediction; the batch sweep catches and counts them.
"""

from __future__ import annotations


class SoVestError(Exception):
    """Base class for all domain errors."""

    code = "SOVEST_ERROR"


class ValidationError(SoVestError, ValueError):
    code = "VALIDATION_ERROR"


class InvalidDirection(ValidationError):
    code = "INVALID_DIRECTION"

    def __init__(self, value: object) -> None:
        super().__init__(f"Prediction type must be either Bullish or Bearish, got {value!r}")
        self.value = value


class InvalidEndDate(ValidationError):
    code = "INVALID_END_DATE"


class MissingReasoning(ValidationError):
    code = "MISSING_REASONING"

    def __init__(self) -> None:
        super().__init__("Reasoning for your prediction is required")


class InvalidTargetPrice(ValidationError):
    code = "INVALID_TARGET_PRICE"


class StockNotFound(ValidationError):
    code = "STOCK_NOT_FOUND"

    def __init__(self, reference: object) -> None:
        super().__init__(f"Stock {reference!r} does not exist")
        self.reference = reference


class UserNotFound(ValidationError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} does not exist")
        self.user_id = user_id


class PredictionNotFound(ValidationError):
    code = "PREDICTION_NOT_FOUND"

    def __init__(self, prediction_id: int) -> None:
        super().__init__(f"Prediction {prediction_id} not found")
        self.prediction_id = prediction_id


class PredictionNotEditable(ValidationError):
    code = "PREDICTION_NOT_EDITABLE"

    def __init__(self, prediction_id: int | None) -> None:
        super().__init__(f"Prediction {prediction_id} has been evaluated and cannot be edited")
        self.prediction_id = prediction_id


class InvalidEvaluationDate(ValidationError):
    code = "INVALID_EVALUATION_DATE"


class InvalidVoteType(ValidationError):
    code = "INVALID_VOTE_TYPE"

    def __init__(self, value: object) -> None:
        super().__init__(f"Vote type must be either upvote or downvote, got {value!r}")
        self.value = value


class EvaluationError(SoVestError):
    code = "EVALUATION_ERROR"


class PriceDataUnavailable(EvaluationError):
    code = "PRICE_DATA_UNAVAILABLE"

    def __init__(self, symbol: str, missing: str) -> None:
        super().__init__(f"Unable to retrieve {missing} price for {symbol}")
        self.symbol = symbol
        self.missing = missing


class ReputationUpdateFailed(EvaluationError):
    code = "REPUTATION_UPDATE_FAILED"

    def __init__(self, user_id: int, reason: str) -> None:
        super().__init__(f"Reputation update failed for user {user_id}: {reason}")
        self.user_id = user_id
