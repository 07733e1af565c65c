"""Closing-price lookups used to score predictions.

The stored `stock_prices` table is consulted first. When it has no close
recent enough for the requested day, yfinance fills the gap and the fetched
bar is written back so the next lookup stays local.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal

from sovest.data.yfinance_client import YFinanceClient
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)


class PriceHistoryProvider(ABC):
    """Source of the closing price for a symbol on (or near) a day."""

    @abstractmethod
    def get_price_on_or_near(self, symbol: str, on: date) -> Decimal | None:
        """Closing price, or None when no usable price exists."""


class StoredPriceHistory(PriceHistoryProvider):
    def __init__(
        self,
        registry: Registry,
        client: YFinanceClient | None = None,
        max_gap_days: int = 7,
    ) -> None:
        self._registry = registry
        self._client = client
        self._max_gap_days = max_gap_days

    def get_price_on_or_near(self, symbol: str, on: date) -> Decimal | None:
        if isinstance(on, datetime):
            on = on.date()

        stored = self._registry.get_close_on_or_before(symbol, on)
        if stored is not None and (on - stored.price_date).days <= self._max_gap_days:
            return stored.close_price

        if self._client is None:
            if stored is not None:
                logger.warning(
                    "Stored close for %s is from %s, more than %d days before %s",
                    symbol, stored.price_date, self._max_gap_days, on,
                )
            return None

        fetched = self._client.get_close_on_or_near(symbol, on)
        if fetched is None:
            return None

        try:
            self._registry.upsert_prices([fetched])
        except Exception:
            logger.exception("Failed to store fetched close for %s on %s", symbol, fetched.price_date)
        return fetched.close_price
