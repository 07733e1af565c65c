"""Pure accuracy and reputation functions.

All inputs are Decimals; nothing here touches storage or the network, so
the engine and the tests share the exact same arithmetic.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sovest.config import ScoringPolicy
from sovest.models.prediction import Direction

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def actual_direction(start_price: Decimal, end_price: Decimal) -> Direction | None:
    """Observed move between two closes; None when the price did not move."""
    if end_price > start_price:
        return Direction.BULLISH
    if end_price < start_price:
        return Direction.BEARISH
    return None


def direction_score(
    predicted: Direction, actual: Direction | None, policy: ScoringPolicy
) -> Decimal:
    if actual is None:
        return policy.flat_direction_score
    return HUNDRED if predicted == actual else ZERO


def precision_penalty(
    target_price: Decimal | None,
    end_price: Decimal,
    start_price: Decimal,
    policy: ScoringPolicy,
) -> Decimal:
    """Linear penalty on the target miss, capped at max_precision_penalty.

    The miss is measured relative to the baseline price and reaches the cap
    at precision_tolerance (20% by default).
    """
    if target_price is None:
        return ZERO
    relative_error = abs(target_price - end_price) / start_price
    ratio = min(relative_error / policy.precision_tolerance, Decimal("1"))
    return policy.max_precision_penalty * ratio


def compute_accuracy(
    predicted: Direction,
    start_price: Decimal,
    end_price: Decimal,
    target_price: Decimal | None,
    policy: ScoringPolicy,
) -> tuple[Decimal, Decimal, Decimal, Direction | None]:
    """Returns (accuracy, direction_score, penalty, actual_direction).

    Raises ValueError on a non-positive baseline.
    """
    if start_price <= 0:
        raise ValueError(f"start price must be positive, got {start_price}")

    actual = actual_direction(start_price, end_price)
    score = direction_score(predicted, actual, policy)
    penalty = precision_penalty(target_price, end_price, start_price, policy)
    accuracy = max(ZERO, min(HUNDRED, score - penalty))
    return (
        accuracy.quantize(_CENT, rounding=ROUND_HALF_UP),
        score,
        penalty.quantize(_CENT, rounding=ROUND_HALF_UP),
        actual,
    )


def reputation_delta(accuracy: Decimal, policy: ScoringPolicy) -> int:
    """Tiered step function; non-decreasing in accuracy."""
    for threshold, points in policy.reputation_tiers:
        if accuracy >= threshold:
            return points
    if accuracy <= policy.poor_threshold:
        return policy.poor_delta
    return 0
