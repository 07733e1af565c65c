from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal


@dataclass
class Stock:
    symbol: str
    company_name: str
    sector: str = ""
    is_active: bool = True
    id: int | None = None
    created_at: datetime | None = None


@dataclass
class PricePoint:
    symbol: str
    price_date: date
    close_price: Decimal
    open_price: Decimal | None = None
    high_price: Decimal | None = None
    low_price: Decimal | None = None
    volume: int | None = None
