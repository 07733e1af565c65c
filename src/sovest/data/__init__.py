from __future__ import annotations

from sovest.data.price_history import PriceHistoryProvider, StoredPriceHistory
from sovest.data.refresh import PriceRefresher
from sovest.data.yfinance_client import CircuitBreaker, YFinanceClient

__all__ = [
    "CircuitBreaker",
    "PriceHistoryProvider",
    "PriceRefresher",
    "StoredPriceHistory",
    "YFinanceClient",
]
