"""Response formatters shared by the route modules."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sovest.models.prediction import Prediction
from sovest.models.stock import PricePoint, Stock
from sovest.models.vote import VoteTally


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def format_prediction(p: Prediction, tally: VoteTally | None = None) -> dict:
    data = {
        "id": p.id,
        "userId": p.user_id,
        "stockId": p.stock_id,
        "symbol": p.symbol,
        "predictionType": p.direction.value,
        "targetPrice": _num(p.target_price),
        "predictionDate": _iso(p.created_at),
        "endDate": _iso(p.end_date),
        "isActive": p.is_active,
        "accuracy": _num(p.accuracy),
        "reasoning": p.reasoning,
    }
    if tally is not None:
        data["votes"] = format_tally(tally)
    return data


def format_trending(row: dict) -> dict:
    """Format a trending row (prediction joined with author and vote counts)."""
    return {
        "id": row["prediction_id"],
        "userId": row["user_id"],
        "symbol": row["symbol"],
        "predictionType": row["prediction_type"],
        "targetPrice": _num(row.get("target_price")),
        "endDate": _iso(row.get("end_date")),
        "isActive": bool(row["is_active"]),
        "accuracy": _num(row.get("accuracy")),
        "predictionDate": _iso(row.get("prediction_date")),
        "author": f"{row.get('first_name') or ''} {row.get('last_name') or ''}".strip(),
        "authorReputation": int(row.get("reputation_score") or 0),
        "upvotes": int(row.get("upvotes") or 0),
        "downvotes": int(row.get("downvotes") or 0),
    }


def format_tally(t: VoteTally) -> dict:
    return {
        "predictionId": t.prediction_id,
        "upvotes": t.upvotes,
        "downvotes": t.downvotes,
        "score": t.score,
    }


def format_stock(s: Stock) -> dict:
    return {
        "id": s.id,
        "symbol": s.symbol,
        "companyName": s.company_name,
        "sector": s.sector or None,
        "isActive": s.is_active,
    }


def format_price(p: PricePoint) -> dict:
    return {
        "date": p.price_date.isoformat(),
        "open": _num(p.open_price),
        "high": _num(p.high_price),
        "low": _num(p.low_price),
        "close": float(p.close_price),
        "volume": p.volume,
    }
