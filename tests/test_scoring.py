from __future__ import annotations

from decimal import Decimal

import pytest

from sovest.config import ScoringPolicy
from sovest.models.prediction import Direction
from sovest.predictions.scoring import (
    actual_direction,
    compute_accuracy,
    direction_score,
    precision_penalty,
    reputation_delta,
)

D = Decimal
POLICY = ScoringPolicy()


def _accuracy(direction: Direction, start: str, end: str, target: str | None = None) -> Decimal:
    accuracy, _, _, _ = compute_accuracy(
        direction, D(start), D(end), D(target) if target is not None else None, POLICY
    )
    return accuracy


class TestActualDirection:
    def test_up(self) -> None:
        assert actual_direction(D("100"), D("101")) == Direction.BULLISH

    def test_down(self) -> None:
        assert actual_direction(D("100"), D("99.99")) == Direction.BEARISH

    def test_flat(self) -> None:
        assert actual_direction(D("100"), D("100.00")) is None


class TestDirectionScore:
    def test_match(self) -> None:
        assert direction_score(Direction.BEARISH, Direction.BEARISH, POLICY) == D("100")

    def test_mismatch(self) -> None:
        assert direction_score(Direction.BULLISH, Direction.BEARISH, POLICY) == D("0")

    def test_flat_uses_policy(self) -> None:
        policy = ScoringPolicy(flat_direction_score=D("40"))
        assert direction_score(Direction.BULLISH, None, policy) == D("40")


class TestDirectionCorrectness:
    def test_bullish_up_scores_full(self) -> None:
        assert _accuracy(Direction.BULLISH, "100", "110") == D("100.00")

    def test_bullish_down_scores_zero(self) -> None:
        assert _accuracy(Direction.BULLISH, "100", "90") == D("0.00")

    def test_bullish_flat_scores_half(self) -> None:
        assert _accuracy(Direction.BULLISH, "100", "100") == D("50.00")

    def test_bearish_down_scores_full(self) -> None:
        assert _accuracy(Direction.BEARISH, "100", "80") == D("100.00")


class TestTargetPrecision:
    def test_exact_target_no_penalty(self) -> None:
        assert _accuracy(Direction.BULLISH, "100", "120", target="120") == D("100.00")

    def test_overshoot_is_penalized(self) -> None:
        acc = _accuracy(Direction.BULLISH, "100", "140", target="120")
        assert acc < D("100")
        assert acc == D("50.00")

    def test_penalty_is_linear_below_tolerance(self) -> None:
        # 10% miss is half the 20% tolerance -> half of the 50 point cap
        assert _accuracy(Direction.BULLISH, "100", "120", target="110") == D("75.00")

    def test_bearish_partial_penalty(self) -> None:
        assert _accuracy(Direction.BEARISH, "100", "90", target="95") == D("87.50")

    def test_wrong_direction_with_far_target_clamps_to_zero(self) -> None:
        assert _accuracy(Direction.BEARISH, "100", "110", target="50") == D("0.00")

    def test_penalty_capped(self) -> None:
        penalty = precision_penalty(D("1000"), D("100"), D("100"), POLICY)
        assert penalty == POLICY.max_precision_penalty

    def test_no_target_no_penalty(self) -> None:
        assert precision_penalty(None, D("150"), D("100"), POLICY) == D("0")

    def test_accuracy_always_in_range(self) -> None:
        for direction in Direction:
            for end in ("1", "50", "99.5", "100", "100.5", "150", "400"):
                for target in (None, "0", "80", "100", "125", "900"):
                    acc = _accuracy(direction, "100", end, target)
                    assert D("0") <= acc <= D("100")
                    assert acc == acc.quantize(D("0.01"))

    def test_non_positive_baseline_rejected(self) -> None:
        with pytest.raises(ValueError):
            compute_accuracy(Direction.BULLISH, D("0"), D("10"), None, POLICY)

    def test_returns_components(self) -> None:
        accuracy, score, penalty, actual = compute_accuracy(
            Direction.BULLISH, D("100"), D("120"), D("110"), POLICY
        )
        assert accuracy == D("75.00")
        assert score == D("100")
        assert penalty == D("25.00")
        assert actual == Direction.BULLISH


class TestReputationDelta:
    @pytest.mark.parametrize(
        ("accuracy", "expected"),
        [
            ("100", 10),
            ("90", 10),
            ("89.99", 5),
            ("70", 5),
            ("69.99", 2),
            ("50", 2),
            ("49.99", 0),
            ("30.01", 0),
            ("30", -2),
            ("0", -2),
        ],
    )
    def test_tiers(self, accuracy: str, expected: int) -> None:
        assert reputation_delta(D(accuracy), POLICY) == expected

    def test_monotonic(self) -> None:
        previous = None
        for step in range(0, 10001, 25):
            delta = reputation_delta(D(step) / 100, POLICY)
            if previous is not None:
                assert delta >= previous
            previous = delta


class TestScoringPolicy:
    def test_rejects_zero_tolerance(self) -> None:
        with pytest.raises(ValueError, match="precision_tolerance"):
            ScoringPolicy(precision_tolerance=D("0"))

    def test_rejects_unsorted_tiers(self) -> None:
        with pytest.raises(ValueError, match="reputation_tiers"):
            ScoringPolicy(reputation_tiers=((D("50"), 2), (D("90"), 10)))

    def test_rejects_positive_poor_delta(self) -> None:
        with pytest.raises(ValueError, match="poor_delta"):
            ScoringPolicy(poor_delta=3)
