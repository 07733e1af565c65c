from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

import yfinance as yf

from sovest.models.stock import PricePoint

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal | None:
    """Safely convert a value to Decimal rounded to cents."""
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result.quantize(_CENT)


def _column(df: Any, name: str) -> Any:
    """Single-ticker column as a Series, whatever the column index shape."""
    col = df[name]
    # Newer yfinance keys single-ticker frames by (field, ticker)
    if getattr(col, "ndim", 1) == 2:
        col = col.iloc[:, 0]
    return col


@dataclass
class CircuitBreaker:
    """Trips when failure rate exceeds threshold over a window."""

    threshold: float = 0.50  # 50% failure rate
    window_seconds: int = 300  # 5-minute window
    min_calls: int = 20
    _successes: deque[float] = field(default_factory=deque)
    _failures: deque[float] = field(default_factory=deque)

    def record_success(self) -> None:
        self._prune()
        self._successes.append(time.monotonic())

    def record_failure(self) -> None:
        self._prune()
        self._failures.append(time.monotonic())

    def _prune(self) -> None:
        """Remove entries outside the time window."""
        cutoff = time.monotonic() - self.window_seconds
        while self._successes and self._successes[0] < cutoff:
            self._successes.popleft()
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()

    @property
    def is_tripped(self) -> bool:
        self._prune()
        total = len(self._successes) + len(self._failures)
        if total < self.min_calls:
            return False
        return self.failure_rate >= self.threshold

    @property
    def failure_rate(self) -> float:
        self._prune()
        total = len(self._successes) + len(self._failures)
        if total == 0:
            return 0.0
        return len(self._failures) / total

    def reset(self) -> None:
        """Clear all recorded successes and failures."""
        self._successes.clear()
        self._failures.clear()


class YFinanceClient:
    """Daily close lookups from yfinance with caching and circuit breaking."""

    def __init__(self, cache_ttl_hours: int = 24) -> None:
        self._cache: dict[str, tuple[Any, datetime]] = {}
        self._cache_ttl = timedelta(hours=cache_ttl_hours)
        self._circuit_breaker = CircuitBreaker()

    def get_close_on_or_near(
        self, ticker: str, target_date: date, window_days: int = 5
    ) -> PricePoint | None:
        """Closing bar for a ticker on or near a specific date.

        Tries the exact date first, then the nearest trading day before it,
        and as a last resort the first trading day after it, all within
        window_days of the target.
        """
        cache_key = f"close:{ticker}:{target_date.isoformat()}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        if self._circuit_breaker.is_tripped:
            logger.warning(
                "Circuit breaker tripped (failure_rate=%.2f), skipping %s",
                self._circuit_breaker.failure_rate,
                ticker,
            )
            return None

        start = target_date - timedelta(days=window_days)
        # yfinance treats end as exclusive
        end = target_date + timedelta(days=window_days + 1)
        try:
            df = yf.download(
                ticker, start=start.isoformat(), end=end.isoformat(), progress=False
            )
        except Exception:
            self._circuit_breaker.record_failure()
            logger.exception("Price lookup failed for %s on %s", ticker, target_date)
            return None

        if df is None or df.empty:
            self._circuit_breaker.record_failure()
            logger.warning("No price data for %s around %s", ticker, target_date)
            return None

        close = _column(df, "Close").dropna()
        if close.empty:
            self._circuit_breaker.record_failure()
            return None

        on_or_before = close[close.index.date <= target_date]
        picked = on_or_before if not on_or_before.empty else close
        pos = -1 if not on_or_before.empty else 0

        price = _to_decimal(picked.iloc[pos])
        if price is None:
            self._circuit_breaker.record_failure()
            return None

        self._circuit_breaker.record_success()
        point = PricePoint(
            symbol=ticker.upper(),
            price_date=picked.index[pos].date(),
            close_price=price,
        )
        self._set_cached(cache_key, point)
        return point

    def get_history(self, ticker: str, days: int = 10) -> list[PricePoint]:
        """Daily bars for the last `days` calendar days, oldest first."""
        if self._circuit_breaker.is_tripped:
            logger.warning("Circuit breaker tripped, skipping history for %s", ticker)
            return []

        end = date.today() + timedelta(days=1)
        start = end - timedelta(days=days + 1)
        try:
            df = yf.download(
                ticker, start=start.isoformat(), end=end.isoformat(), progress=False
            )
        except Exception:
            self._circuit_breaker.record_failure()
            logger.exception("History download failed for %s", ticker)
            return []

        if df is None or df.empty:
            self._circuit_breaker.record_failure()
            logger.warning("No history returned for %s", ticker)
            return []

        closes = _column(df, "Close")
        opens = _column(df, "Open") if "Open" in df else None
        highs = _column(df, "High") if "High" in df else None
        lows = _column(df, "Low") if "Low" in df else None
        volumes = _column(df, "Volume") if "Volume" in df else None

        points: list[PricePoint] = []
        for i, ts in enumerate(closes.index):
            close = _to_decimal(closes.iloc[i])
            if close is None:
                continue
            volume = volumes.iloc[i] if volumes is not None else None
            points.append(
                PricePoint(
                    symbol=ticker.upper(),
                    price_date=ts.date(),
                    close_price=close,
                    open_price=_to_decimal(opens.iloc[i]) if opens is not None else None,
                    high_price=_to_decimal(highs.iloc[i]) if highs is not None else None,
                    low_price=_to_decimal(lows.iloc[i]) if lows is not None else None,
                    volume=int(volume) if volume is not None and volume == volume else None,
                )
            )

        self._circuit_breaker.record_success()
        return points

    @property
    def is_healthy(self) -> bool:
        return not self._circuit_breaker.is_tripped

    @property
    def failure_rate(self) -> float:
        return self._circuit_breaker.failure_rate

    def clear_cache(self) -> None:
        self._cache.clear()

    def _get_cached(self, key: str) -> Any | None:
        """Return cached value if still valid, else None."""
        if key in self._cache:
            value, cached_at = self._cache[key]
            if datetime.now(UTC) - cached_at < self._cache_ttl:
                return value
            del self._cache[key]
        return None

    def _set_cached(self, key: str, value: Any) -> None:
        """Store a value in the cache."""
        self._cache[key] = (value, datetime.now(UTC))
