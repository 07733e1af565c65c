from __future__ import annotations

import logging

from sovest.data.yfinance_client import YFinanceClient
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)


class PriceRefresher:
    """Pulls recent daily bars for every active stock into stock_prices."""

    def __init__(self, registry: Registry, client: YFinanceClient) -> None:
        self._registry = registry
        self._client = client

    def refresh(self, days: int = 10) -> dict[str, bool]:
        """Returns {symbol: stored_any_bars} for each active stock."""
        results: dict[str, bool] = {}
        stocks = self._registry.get_stocks(active_only=True)
        logger.info("Refreshing %d-day price history for %d stocks", days, len(stocks))

        for stock in stocks:
            try:
                points = self._client.get_history(stock.symbol, days=days)
                if not points:
                    logger.warning("No price data returned for %s", stock.symbol)
                    results[stock.symbol] = False
                    continue
                self._registry.upsert_prices(points)
                results[stock.symbol] = True
            except Exception:
                logger.exception("Price refresh failed for %s", stock.symbol)
                results[stock.symbol] = False

        updated = sum(1 for ok in results.values() if ok)
        logger.info("Price refresh complete: %d/%d stocks updated", updated, len(results))
        return results
