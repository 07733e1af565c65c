from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sovest.errors import (
    InvalidDirection,
    InvalidEndDate,
    InvalidTargetPrice,
    MissingReasoning,
    PredictionNotEditable,
    StockNotFound,
    ValidationError,
)
from sovest.models.prediction import Direction, Prediction, PredictionDraft
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
# target_price is NUMERIC(10, 2)
MAX_TARGET_PRICE = Decimal("99999999.99")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_end_date(value: Any) -> date:
    """Accepts a date, a datetime, or an ISO date/datetime string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise InvalidEndDate(f"End date must be a valid date (YYYY-MM-DD), got {value!r}")


def normalize_symbol(symbol: Any) -> str:
    """Upper-cased ticker; raises ValidationError when empty or too long."""
    text = str(symbol or "").strip().upper()
    if not text or len(text) > 10 or " " in text:
        raise ValidationError(f"Stock symbol must be 1-10 characters without spaces, got {symbol!r}")
    return text


def parse_target_price(value: Any) -> Decimal | None:
    if _blank(value):
        return None
    if isinstance(value, bool):
        raise InvalidTargetPrice(f"Target price must be a number, got {value!r}")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidTargetPrice(f"Target price must be a number, got {value!r}") from None
    if not price.is_finite():
        raise InvalidTargetPrice(f"Target price must be a number, got {value!r}")
    if price < 0:
        raise InvalidTargetPrice(f"Target price cannot be negative, got {price}")
    if price > MAX_TARGET_PRICE:
        raise InvalidTargetPrice(f"Target price cannot exceed {MAX_TARGET_PRICE}, got {value!r}")
    try:
        return price.quantize(_CENT)
    except InvalidOperation:
        raise InvalidTargetPrice(f"Target price must be a number, got {value!r}") from None


class PredictionValidator:
    """Checks prediction input and normalizes it into a PredictionDraft.

    Checks run in a fixed order and the first failure is raised:
    editability, direction, end date, reasoning, target price, stock.
    Only the stocks table is read; nothing is written.
    """

    def __init__(self, registry: Registry, today: Callable[[], date] = date.today) -> None:
        self._registry = registry
        self._today = today

    def validate_create(self, payload: Mapping[str, Any]) -> PredictionDraft:
        return self._validate(
            direction=payload.get("prediction_type"),
            end_date=payload.get("end_date"),
            reasoning=payload.get("reasoning"),
            target_price=payload.get("target_price"),
            stock_id=payload.get("stock_id"),
            symbol=payload.get("symbol"),
            require_active_stock=True,
        )

    def validate_update(
        self, existing: Prediction, payload: Mapping[str, Any]
    ) -> PredictionDraft:
        """Merge an edit onto an existing prediction and validate the result.

        Omitted or empty fields keep their stored value. The merged
        prediction is checked in full, so a stale end date must be moved.
        """
        if not existing.is_active:
            raise PredictionNotEditable(existing.id)

        def pick(key: str, current: Any) -> Any:
            value = payload.get(key)
            return current if _blank(value) else value

        new_stock_ref = not (_blank(payload.get("stock_id")) and _blank(payload.get("symbol")))
        return self._validate(
            direction=pick("prediction_type", existing.direction.value),
            end_date=pick("end_date", existing.end_date),
            reasoning=pick("reasoning", existing.reasoning),
            target_price=pick("target_price", existing.target_price),
            stock_id=payload.get("stock_id") if new_stock_ref else existing.stock_id,
            symbol=payload.get("symbol") if new_stock_ref else None,
            require_active_stock=new_stock_ref,
        )

    def _validate(
        self,
        *,
        direction: Any,
        end_date: Any,
        reasoning: Any,
        target_price: Any,
        stock_id: Any,
        symbol: Any,
        require_active_stock: bool,
    ) -> PredictionDraft:
        parsed_direction = self._check_direction(direction)

        if _blank(end_date):
            raise InvalidEndDate("End date is required")
        parsed_end = parse_end_date(end_date)
        today = self._today()
        if parsed_end <= today:
            raise InvalidEndDate(f"End date must be in the future, got {parsed_end.isoformat()}")

        if _blank(reasoning) or not isinstance(reasoning, str):
            raise MissingReasoning()

        parsed_target = parse_target_price(target_price)
        resolved_stock_id = self._resolve_stock(stock_id, symbol, require_active_stock)

        return PredictionDraft(
            stock_id=resolved_stock_id,
            direction=parsed_direction,
            end_date=parsed_end,
            reasoning=reasoning.strip(),
            target_price=parsed_target,
        )

    @staticmethod
    def _check_direction(value: Any) -> Direction:
        if isinstance(value, Direction):
            return value
        if isinstance(value, str):
            try:
                return Direction(value.strip())
            except ValueError:
                pass
        raise InvalidDirection(value)

    def _resolve_stock(self, stock_id: Any, symbol: Any, require_active: bool) -> int:
        if not _blank(stock_id):
            try:
                sid = int(stock_id)
            except (TypeError, ValueError):
                raise StockNotFound(stock_id) from None
            stock = self._registry.get_stock(sid)
            reference: Any = sid
        elif not _blank(symbol):
            reference = str(symbol).strip().upper()
            stock = self._registry.get_stock_by_symbol(reference)
        else:
            raise StockNotFound(None)

        if stock is None or stock.id is None:
            raise StockNotFound(reference)
        if require_active and not stock.is_active:
            logger.info("Rejected prediction on inactive stock %s", stock.symbol)
            raise StockNotFound(reference)
        return stock.id
