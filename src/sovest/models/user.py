from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass
class User:
    email: str
    first_name: str
    last_name: str
    reputation_score: int = 0
    id: int | None = None
    created_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class UserPredictionStats:
    user_id: int
    total: int = 0
    accurate: int = 0
    inaccurate: int = 0
    pending: int = 0
    avg_accuracy: Decimal = Decimal("0")
    reputation: int = 0


@dataclass
class LeaderboardEntry:
    user_id: int
    display_name: str
    reputation_score: int
    predictions_count: int
    avg_accuracy: Decimal
