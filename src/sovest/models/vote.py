from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class VoteType(StrEnum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


@dataclass
class Vote:
    prediction_id: int
    user_id: int
    vote_type: VoteType
    id: int | None = None
    voted_at: datetime | None = None


@dataclass
class VoteTally:
    prediction_id: int
    upvotes: int = 0
    downvotes: int = 0

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes

    def as_dict(self) -> dict[str, int]:
        return {
            "prediction_id": self.prediction_id,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "score": self.score,
        }
