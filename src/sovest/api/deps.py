"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from sovest.config import AppConfig
from sovest.data.yfinance_client import YFinanceClient
from sovest.predictions.engine import ScoringEngine
from sovest.predictions.manager import PredictionManager
from sovest.predictions.votes import VotingLedger
from sovest.registry.db import Database
from sovest.registry.queries import Registry


class AppState:
    """Holds shared application state initialised during lifespan."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.registry: Registry | None = None
        self.price_client: YFinanceClient | None = None
        self.prediction_manager: PredictionManager | None = None
        self.scoring_engine: ScoringEngine | None = None
        self.voting_ledger: VotingLedger | None = None


# Singleton shared across the app
app_state = AppState()


def get_registry() -> Registry:
    if app_state.registry is None:
        raise RuntimeError("Registry not initialised")
    return app_state.registry


def get_prediction_manager() -> PredictionManager:
    if app_state.prediction_manager is None:
        raise RuntimeError("PredictionManager not initialised")
    return app_state.prediction_manager


def get_scoring_engine() -> ScoringEngine:
    if app_state.scoring_engine is None:
        raise RuntimeError("ScoringEngine not initialised")
    return app_state.scoring_engine


def get_voting_ledger() -> VotingLedger:
    if app_state.voting_ledger is None:
        raise RuntimeError("VotingLedger not initialised")
    return app_state.voting_ledger
