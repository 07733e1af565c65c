"""FastAPI application factory with CORS, domain error mapping, and lifespan management."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sovest.api.deps import app_state
from sovest.config import load_config
from sovest.data.price_history import StoredPriceHistory
from sovest.data.yfinance_client import YFinanceClient
from sovest.errors import (
    EvaluationError,
    PredictionNotEditable,
    PredictionNotFound,
    SoVestError,
    StockNotFound,
    UserNotFound,
    ValidationError,
)
from sovest.predictions.engine import ScoringEngine
from sovest.predictions.manager import PredictionManager
from sovest.predictions.votes import VotingLedger
from sovest.registry.db import Database
from sovest.registry.queries import Registry

logger = logging.getLogger(__name__)

API_PREFIX = "/api/sovest"

_NOT_FOUND = (PredictionNotFound, StockNotFound, UserNotFound)


async def _periodic_evaluation_loop(engine: ScoringEngine, interval_hours: int) -> None:
    """Background task: sweep matured predictions at startup and then every interval."""
    while True:
        try:
            report = await asyncio.to_thread(engine.evaluate_active_predictions)
            if report.total:
                logger.info("Scheduled evaluation: %s", report.as_dict())
        except Exception:
            logger.exception("Scheduled evaluation failed")
        await asyncio.sleep(interval_hours * 3600)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown of the DB and dependent services."""
    config = load_config()

    # Database
    db = Database(config.db_dsn)
    db.connect()
    registry = Registry(db)

    # Market data
    price_client = YFinanceClient() if config.use_yfinance else None
    prices = StoredPriceHistory(registry, price_client, max_gap_days=config.price_max_gap_days)

    # Services
    scoring_engine = ScoringEngine(registry, prices, config.scoring)

    app_state.config = config
    app_state.db = db
    app_state.registry = registry
    app_state.price_client = price_client
    app_state.prediction_manager = PredictionManager(registry)
    app_state.scoring_engine = scoring_engine
    app_state.voting_ledger = VotingLedger(registry)

    bg_tasks: list[asyncio.Task] = []
    if config.evaluation_interval_hours > 0:
        bg_tasks.append(
            asyncio.create_task(
                _periodic_evaluation_loop(scoring_engine, config.evaluation_interval_hours)
            )
        )
    logger.info("API started: DB ready, %d background tasks", len(bg_tasks))
    yield

    for task in bg_tasks:
        task.cancel()

    db.close()
    logger.info("API shutdown complete")


def _status_for(exc: SoVestError) -> int:
    if isinstance(exc, _NOT_FOUND):
        return 404
    if isinstance(exc, PredictionNotEditable):
        return 409
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, EvaluationError):
        return 503
    return 500


async def _domain_error_handler(request: Request, exc: SoVestError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "code": exc.code})


def create_app(*, use_lifespan: bool = True, cors_origins: list[str] | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (useful for testing
            where deps are injected via app_state directly).
        cors_origins: Allowed browser origins; defaults to CORS_ORIGINS from config.
    """
    app = FastAPI(
        title="SoVest API",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    if cors_origins is None:
        cors_origins = list(load_config().cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SoVestError, _domain_error_handler)

    from sovest.api.routes import predictions, stocks, system, users, votes

    app.include_router(predictions.router, prefix=API_PREFIX, tags=["predictions"])
    app.include_router(votes.router, prefix=API_PREFIX, tags=["votes"])
    app.include_router(users.router, prefix=API_PREFIX, tags=["users"])
    app.include_router(stocks.router, prefix=API_PREFIX, tags=["stocks"])
    app.include_router(system.router, prefix=API_PREFIX, tags=["system"])

    return app
