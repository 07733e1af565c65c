"""Stock list and price history endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sovest.api.deps import get_registry
from sovest.api.routes.shared import format_price, format_stock
from sovest.errors import StockNotFound
from sovest.models.stock import Stock
from sovest.predictions.validator import normalize_symbol
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)

router = APIRouter()


class AddStockRequest(BaseModel):
    symbol: str
    company_name: str
    sector: str = ""


@router.get("/stocks")
def list_stocks(
    include_inactive: bool = Query(False),
    registry: Registry = Depends(get_registry),
) -> dict:
    stocks = registry.get_stocks(active_only=not include_inactive)
    return {"stocks": [format_stock(s) for s in stocks], "count": len(stocks)}


@router.post("/stocks", status_code=201)
def add_stock(
    body: AddStockRequest,
    registry: Registry = Depends(get_registry),
) -> dict:
    """Add a stock, or reactivate and rename an existing symbol."""
    symbol = normalize_symbol(body.symbol)
    stock_id = registry.add_stock(
        Stock(symbol=symbol, company_name=body.company_name.strip(), sector=body.sector.strip())
    )
    logger.info("Stock %s stored as id %s", symbol, stock_id)
    return {"id": stock_id, "symbol": symbol, "status": "stored"}


@router.get("/stocks/{symbol}/prices")
def stock_prices(
    symbol: str,
    limit: int = Query(30, ge=1, le=365),
    registry: Registry = Depends(get_registry),
) -> dict:
    """Most recent stored daily bars, newest first."""
    stock = registry.get_stock_by_symbol(symbol)
    if stock is None:
        raise StockNotFound(symbol.upper())
    prices = registry.get_price_history(stock.symbol, limit=limit)
    return {"symbol": stock.symbol, "prices": [format_price(p) for p in prices]}
