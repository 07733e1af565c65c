from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal

from sovest.config import ScoringPolicy
from sovest.data.price_history import PriceHistoryProvider
from sovest.errors import (
    EvaluationError,
    InvalidEvaluationDate,
    PriceDataUnavailable,
    ReputationUpdateFailed,
)
from sovest.models.prediction import EvaluationReport, EvaluationResult, Prediction
from sovest.predictions.scoring import compute_accuracy, reputation_delta
from sovest.registry.db import Transaction
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)


class ScoringEngine:
    """Evaluates matured predictions against market prices.

    Each evaluation flips the prediction to inactive and applies the
    author's reputation delta in one transaction. The flip only matches an
    active row, so overlapping sweeps apply every delta exactly once.
    """

    def __init__(
        self,
        registry: Registry,
        prices: PriceHistoryProvider,
        policy: ScoringPolicy | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._registry = registry
        self._prices = prices
        self._policy = policy or ScoringPolicy()
        self._today = today

    @property
    def policy(self) -> ScoringPolicy:
        return self._policy

    def evaluate_active_predictions(self, as_of: date | None = None) -> EvaluationReport:
        """Sweep every active prediction whose end date is on or before as_of.

        A failure on one prediction is logged and counted; it never stops
        the sweep. Predictions another runner evaluated first count as
        skipped. An as_of later than today raises InvalidEvaluationDate.
        """
        today = self._today()
        target = as_of or today
        if target > today:
            raise InvalidEvaluationDate(
                f"Cannot evaluate as of {target.isoformat()}, which is after today"
            )
        candidates = self._registry.get_matured_predictions(target)
        report = EvaluationReport(total=len(candidates))
        logger.info("Evaluating %d matured predictions as of %s", report.total, target)

        for prediction in candidates:
            try:
                result = self.evaluate_prediction(prediction)
            except EvaluationError as exc:
                report.errors += 1
                logger.warning("Prediction %s not evaluated: %s", prediction.id, exc)
            except Exception:
                report.errors += 1
                logger.exception("Unexpected error evaluating prediction %s", prediction.id)
            else:
                if result is None:
                    report.skipped += 1
                else:
                    report.evaluated += 1

        logger.info(
            "Evaluation sweep done: %d evaluated, %d errors, %d skipped of %d",
            report.evaluated, report.errors, report.skipped, report.total,
        )
        return report

    def evaluate_prediction(self, prediction: Prediction) -> EvaluationResult | None:
        """Score one prediction and record the outcome.

        Returns None when the prediction is already evaluated, including
        when a concurrent runner evaluates it between read and write, and
        when its end date has not been reached yet.
        Raises PriceDataUnavailable or ReputationUpdateFailed; either way
        the prediction stays active.
        """
        if not prediction.is_active or prediction.accuracy is not None:
            logger.debug("Prediction %s already evaluated", prediction.id)
            return None
        if not prediction.is_matured(self._today()):
            logger.warning(
                "Prediction %s ends %s and is not matured yet", prediction.id, prediction.end_date
            )
            return None

        symbol = self._symbol_for(prediction)
        start_day = prediction.created_at
        if start_day is None:
            raise PriceDataUnavailable(symbol, "start")
        if isinstance(start_day, datetime):
            start_day = start_day.date()

        start_price = self._prices.get_price_on_or_near(symbol, start_day)
        if start_price is None or start_price <= 0:
            raise PriceDataUnavailable(symbol, "start")
        end_price = self._prices.get_price_on_or_near(symbol, prediction.end_date)
        if end_price is None or end_price <= 0:
            raise PriceDataUnavailable(symbol, "end")

        accuracy, score, penalty, actual = compute_accuracy(
            prediction.direction,
            start_price,
            end_price,
            prediction.target_price,
            self._policy,
        )

        with self._registry.transaction() as tx:
            if not self._registry.mark_prediction_evaluated(prediction.id, accuracy, tx=tx):
                logger.info("Prediction %s was evaluated by another runner", prediction.id)
                return None
            delta = self.update_user_reputation(prediction.user_id, accuracy, tx=tx)

        prediction.is_active = False
        prediction.accuracy = accuracy
        logger.info(
            "Prediction %s (%s %s): %s -> %s, accuracy %s, reputation %+d",
            prediction.id, symbol, prediction.direction.value,
            start_price, end_price, accuracy, delta,
        )
        return EvaluationResult(
            prediction_id=prediction.id,  # type: ignore[arg-type]
            user_id=prediction.user_id,
            start_price=start_price,
            end_price=end_price,
            actual_direction=actual,
            direction_score=score,
            precision_penalty=penalty,
            accuracy=accuracy,
            reputation_delta=delta,
        )

    def update_user_reputation(
        self, user_id: int, accuracy: Decimal, tx: Transaction | None = None
    ) -> int:
        """Apply the tiered reputation delta for an accuracy. Returns the delta."""
        delta = reputation_delta(accuracy, self._policy)
        try:
            updated = self._registry.increment_reputation(user_id, delta, tx=tx)
        except Exception as exc:
            raise ReputationUpdateFailed(user_id, str(exc)) from exc
        if not updated:
            raise ReputationUpdateFailed(user_id, "user not found")
        return delta

    def _symbol_for(self, prediction: Prediction) -> str:
        if prediction.symbol:
            return prediction.symbol
        stock = self._registry.get_stock(prediction.stock_id)
        if stock is None:
            raise PriceDataUnavailable(f"stock {prediction.stock_id}", "start")
        return stock.symbol
