from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum


class Direction(StrEnum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"


@dataclass(frozen=True)
class PredictionDraft:
    """Validated, normalized input ready to be persisted."""

    stock_id: int
    direction: Direction
    end_date: date
    reasoning: str
    target_price: Decimal | None = None


@dataclass
class Prediction:
    user_id: int
    stock_id: int
    direction: Direction
    end_date: date
    reasoning: str
    target_price: Decimal | None = None
    symbol: str | None = None
    is_active: bool = True
    accuracy: Decimal | None = None
    id: int | None = None
    created_at: datetime | None = None

    def is_matured(self, as_of: date) -> bool:
        return self.end_date <= as_of


@dataclass
class EvaluationResult:
    prediction_id: int
    user_id: int
    start_price: Decimal
    end_price: Decimal
    actual_direction: Direction | None
    direction_score: Decimal
    precision_penalty: Decimal
    accuracy: Decimal
    reputation_delta: int

    @property
    def was_correct(self) -> bool:
        return self.direction_score == Decimal("100")


@dataclass
class EvaluationReport:
    total: int = 0
    evaluated: int = 0
    errors: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "evaluated": self.evaluated,
            "errors": self.errors,
            "skipped": self.skipped,
        }
