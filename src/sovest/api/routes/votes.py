"""Vote endpoints. Votes are display-only and never affect scoring."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sovest.api.deps import get_voting_ledger
from sovest.api.routes.shared import format_tally
from sovest.predictions.votes import VotingLedger

router = APIRouter()


class VoteRequest(BaseModel):
    user_id: int
    vote_type: str


@router.get("/predictions/{prediction_id}/votes")
def get_votes(
    prediction_id: int,
    user_id: int | None = Query(None, description="Include this user's current vote"),
    ledger: VotingLedger = Depends(get_voting_ledger),
) -> dict:
    result = format_tally(ledger.get_tally(prediction_id))
    if user_id is not None:
        vote = ledger.get_user_vote(prediction_id, user_id)
        result["userVote"] = vote.vote_type.value if vote else None
    return result


@router.post("/predictions/{prediction_id}/votes")
def cast_vote(
    prediction_id: int,
    body: VoteRequest,
    ledger: VotingLedger = Depends(get_voting_ledger),
) -> dict:
    return format_tally(ledger.vote(prediction_id, body.user_id, body.vote_type))


@router.delete("/predictions/{prediction_id}/votes/{user_id}")
def retract_vote(
    prediction_id: int,
    user_id: int,
    ledger: VotingLedger = Depends(get_voting_ledger),
) -> dict:
    return format_tally(ledger.retract_vote(prediction_id, user_id))
