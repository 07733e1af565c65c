"""Tests for the FastAPI REST API layer.

Services are MagicMocks injected into app_state; the domain error handler
and response formatting run for real.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from sovest.api.app import API_PREFIX, create_app
from sovest.api.deps import app_state
from sovest.data.yfinance_client import YFinanceClient
from sovest.errors import (
    InvalidVoteType,
    MissingReasoning,
    PredictionNotEditable,
    PredictionNotFound,
    UserNotFound,
)
from sovest.models.prediction import Direction, EvaluationReport, Prediction
from sovest.models.stock import PricePoint, Stock
from sovest.models.user import LeaderboardEntry, User, UserPredictionStats
from sovest.models.vote import Vote, VoteTally, VoteType
from sovest.predictions.engine import ScoringEngine
from sovest.predictions.manager import PredictionManager
from sovest.predictions.votes import VotingLedger
from sovest.registry.queries import Registry


def _prediction(**overrides) -> Prediction:
    fields = dict(
        id=11,
        user_id=3,
        stock_id=1,
        symbol="AAPL",
        direction=Direction.BULLISH,
        end_date=date(2025, 4, 10),
        reasoning="Strong iPhone cycle",
        target_price=Decimal("210.50"),
        created_at=datetime(2025, 3, 10, 14, 0),
    )
    fields.update(overrides)
    return Prediction(**fields)


@pytest.fixture
def registry() -> MagicMock:
    return MagicMock(spec=Registry)


@pytest.fixture
def manager() -> MagicMock:
    return MagicMock(spec=PredictionManager)


@pytest.fixture
def engine() -> MagicMock:
    return MagicMock(spec=ScoringEngine)


@pytest.fixture
def ledger() -> MagicMock:
    return MagicMock(spec=VotingLedger)


@pytest.fixture
def client(
    registry: MagicMock, manager: MagicMock, engine: MagicMock, ledger: MagicMock
) -> TestClient:
    app = create_app(use_lifespan=False, cors_origins=["http://localhost:5173"])

    app_state.registry = registry
    app_state.prediction_manager = manager
    app_state.scoring_engine = engine
    app_state.voting_ledger = ledger
    app_state.price_client = None

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

    app_state.registry = None
    app_state.prediction_manager = None
    app_state.scoring_engine = None
    app_state.voting_ledger = None
    app_state.price_client = None


# ------------------------------------------------------------------
# Predictions
# ------------------------------------------------------------------


class TestCreatePrediction:
    def test_created(self, client: TestClient, manager: MagicMock) -> None:
        manager.create_prediction.return_value = _prediction()

        resp = client.post(
            f"{API_PREFIX}/predictions",
            json={
                "user_id": 3,
                "stock_id": 1,
                "prediction_type": "Bullish",
                "end_date": "2025-04-10",
                "reasoning": "Strong iPhone cycle",
                "target_price": 210.5,
            },
        )

        assert resp.status_code == 201
        data = resp.json()
        assert data["id"] == 11
        assert data["predictionType"] == "Bullish"
        assert data["targetPrice"] == 210.5
        assert data["endDate"] == "2025-04-10"
        assert data["isActive"] is True
        assert data["accuracy"] is None

        user_id, payload = manager.create_prediction.call_args[0]
        assert user_id == 3
        assert payload["prediction_type"] == "Bullish"
        assert "user_id" not in payload

    def test_validation_error_body(self, client: TestClient, manager: MagicMock) -> None:
        manager.create_prediction.side_effect = MissingReasoning()
        resp = client.post(f"{API_PREFIX}/predictions", json={"user_id": 3, "stock_id": 1})
        assert resp.status_code == 422
        assert resp.json() == {
            "detail": "Reasoning for your prediction is required",
            "code": "MISSING_REASONING",
        }

    def test_unknown_user(self, client: TestClient, manager: MagicMock) -> None:
        manager.create_prediction.side_effect = UserNotFound(99)
        resp = client.post(f"{API_PREFIX}/predictions", json={"user_id": 99})
        assert resp.status_code == 404
        assert resp.json()["code"] == "USER_NOT_FOUND"

    def test_user_id_required(self, client: TestClient) -> None:
        resp = client.post(f"{API_PREFIX}/predictions", json={"stock_id": 1})
        assert resp.status_code == 422


class TestReadPrediction:
    def test_get_with_votes(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_prediction.return_value = (
            _prediction(is_active=False, accuracy=Decimal("87.25")),
            VoteTally(prediction_id=11, upvotes=4, downvotes=1),
        )
        resp = client.get(f"{API_PREFIX}/predictions/11")
        assert resp.status_code == 200
        data = resp.json()
        assert data["accuracy"] == 87.25
        assert data["votes"] == {"predictionId": 11, "upvotes": 4, "downvotes": 1, "score": 3}
        assert data["predictionDate"] == "2025-03-10T14:00:00"

    def test_not_found(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_prediction.side_effect = PredictionNotFound(404)
        resp = client.get(f"{API_PREFIX}/predictions/404")
        assert resp.status_code == 404

    def test_trending(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_trending.return_value = [
            {
                "prediction_id": 11,
                "user_id": 3,
                "symbol": "AAPL",
                "prediction_type": "Bullish",
                "target_price": Decimal("210.50"),
                "end_date": date(2025, 4, 10),
                "is_active": True,
                "accuracy": None,
                "prediction_date": datetime(2025, 3, 10, 14, 0),
                "first_name": "Ada",
                "last_name": "Lovelace",
                "reputation_score": 17,
                "upvotes": 6,
                "downvotes": 2,
            }
        ]
        resp = client.get(f"{API_PREFIX}/predictions/trending?limit=5")
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 1
        row = data["predictions"][0]
        assert row["author"] == "Ada Lovelace"
        assert row["upvotes"] == 6
        manager.get_trending.assert_called_once_with(limit=5)


class TestUpdatePrediction:
    def test_partial_update(self, client: TestClient, manager: MagicMock) -> None:
        manager.update_prediction.return_value = _prediction(target_price=Decimal("220"))
        resp = client.patch(
            f"{API_PREFIX}/predictions/11", json={"user_id": 3, "target_price": "220"}
        )
        assert resp.status_code == 200
        assert resp.json()["targetPrice"] == 220.0

        args, kwargs = manager.update_prediction.call_args
        assert args == (11, {"target_price": "220"})
        assert kwargs == {"user_id": 3}

    def test_evaluated_prediction_conflict(self, client: TestClient, manager: MagicMock) -> None:
        manager.update_prediction.side_effect = PredictionNotEditable(11)
        resp = client.patch(f"{API_PREFIX}/predictions/11", json={"reasoning": "Too late"})
        assert resp.status_code == 409
        assert resp.json()["code"] == "PREDICTION_NOT_EDITABLE"


class TestDeletePrediction:
    def test_deleted(self, client: TestClient, manager: MagicMock) -> None:
        resp = client.delete(f"{API_PREFIX}/predictions/11?user_id=3")
        assert resp.status_code == 200
        assert resp.json() == {"id": 11, "status": "deleted"}
        manager.delete_prediction.assert_called_once_with(11, 3)

    def test_user_id_required(self, client: TestClient) -> None:
        assert client.delete(f"{API_PREFIX}/predictions/11").status_code == 422

    def test_not_owned(self, client: TestClient, manager: MagicMock) -> None:
        manager.delete_prediction.side_effect = PredictionNotFound(11)
        assert client.delete(f"{API_PREFIX}/predictions/11?user_id=4").status_code == 404


class TestEvaluate:
    def test_evaluate_as_of(self, client: TestClient, engine: MagicMock) -> None:
        engine.evaluate_active_predictions.return_value = EvaluationReport(
            total=3, evaluated=2, errors=1, skipped=0
        )
        resp = client.post(f"{API_PREFIX}/predictions/evaluate", json={"as_of": "2025-03-31"})
        assert resp.status_code == 200
        assert resp.json() == {
            "total": 3,
            "evaluated": 2,
            "errors": 1,
            "skipped": 0,
            "asOf": "2025-03-31",
        }
        engine.evaluate_active_predictions.assert_called_once_with(date(2025, 3, 31))

    def test_evaluate_without_body(self, client: TestClient, engine: MagicMock) -> None:
        engine.evaluate_active_predictions.return_value = EvaluationReport()
        resp = client.post(f"{API_PREFIX}/predictions/evaluate")
        assert resp.status_code == 200
        engine.evaluate_active_predictions.assert_called_once_with(None)

    def test_bad_date(self, client: TestClient, engine: MagicMock) -> None:
        resp = client.post(f"{API_PREFIX}/predictions/evaluate", json={"as_of": "March"})
        assert resp.status_code == 400
        engine.evaluate_active_predictions.assert_not_called()

    def test_future_date_rejected(self, client: TestClient, engine: MagicMock) -> None:
        future = (date.today() + timedelta(days=30)).isoformat()
        resp = client.post(f"{API_PREFIX}/predictions/evaluate", json={"as_of": future})
        assert resp.status_code == 400
        engine.evaluate_active_predictions.assert_not_called()


# ------------------------------------------------------------------
# Votes
# ------------------------------------------------------------------


class TestVotes:
    def test_cast_vote(self, client: TestClient, ledger: MagicMock) -> None:
        ledger.vote.return_value = VoteTally(prediction_id=11, upvotes=1)
        resp = client.post(
            f"{API_PREFIX}/predictions/11/votes", json={"user_id": 4, "vote_type": "upvote"}
        )
        assert resp.status_code == 200
        assert resp.json()["upvotes"] == 1
        ledger.vote.assert_called_once_with(11, 4, "upvote")

    def test_invalid_vote_type(self, client: TestClient, ledger: MagicMock) -> None:
        ledger.vote.side_effect = InvalidVoteType("like")
        resp = client.post(
            f"{API_PREFIX}/predictions/11/votes", json={"user_id": 4, "vote_type": "like"}
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "INVALID_VOTE_TYPE"

    def test_get_votes_with_user_vote(self, client: TestClient, ledger: MagicMock) -> None:
        ledger.get_tally.return_value = VoteTally(prediction_id=11, upvotes=2, downvotes=3)
        ledger.get_user_vote.return_value = Vote(
            prediction_id=11, user_id=4, vote_type=VoteType.DOWNVOTE
        )
        resp = client.get(f"{API_PREFIX}/predictions/11/votes?user_id=4")
        data = resp.json()
        assert data["score"] == -1
        assert data["userVote"] == "downvote"

    def test_get_votes_without_user(self, client: TestClient, ledger: MagicMock) -> None:
        ledger.get_tally.return_value = VoteTally(prediction_id=11)
        data = client.get(f"{API_PREFIX}/predictions/11/votes").json()
        assert "userVote" not in data
        ledger.get_user_vote.assert_not_called()

    def test_retract(self, client: TestClient, ledger: MagicMock) -> None:
        ledger.retract_vote.return_value = VoteTally(prediction_id=11)
        resp = client.delete(f"{API_PREFIX}/predictions/11/votes/4")
        assert resp.status_code == 200
        ledger.retract_vote.assert_called_once_with(11, 4)


# ------------------------------------------------------------------
# Users
# ------------------------------------------------------------------


class TestUsers:
    def test_register(self, client: TestClient, manager: MagicMock) -> None:
        manager.register_user.return_value = User(
            email="ada@example.com", first_name="Ada", last_name="Lovelace", id=8
        )
        resp = client.post(
            f"{API_PREFIX}/users",
            json={"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace"},
        )
        assert resp.status_code == 201
        assert resp.json() == {
            "id": 8,
            "email": "ada@example.com",
            "displayName": "Ada Lovelace",
            "reputationScore": 0,
        }

    def test_profile(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_user.return_value = User(
            email="ada@example.com", first_name="Ada", last_name="Lovelace",
            reputation_score=25, id=8, created_at=datetime(2025, 1, 5, 9, 0),
        )
        resp = client.get(f"{API_PREFIX}/users/8")
        assert resp.status_code == 200
        assert resp.json() == {
            "id": 8,
            "displayName": "Ada Lovelace",
            "reputationScore": 25,
            "memberSince": "2025-01-05T09:00:00",
        }

    def test_profile_unknown_user(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_user.side_effect = UserNotFound(99)
        assert client.get(f"{API_PREFIX}/users/99").status_code == 404

    def test_leaderboard(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_leaderboard.return_value = [
            LeaderboardEntry(
                user_id=8,
                display_name="Ada Lovelace",
                reputation_score=25,
                predictions_count=4,
                avg_accuracy=Decimal("81.3"),
            )
        ]
        resp = client.get(f"{API_PREFIX}/users/leaderboard?limit=3")
        assert resp.status_code == 200
        assert resp.json()["users"][0]["avgAccuracy"] == 81.3
        manager.get_leaderboard.assert_called_once_with(3)

    def test_stats(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_user_stats.return_value = UserPredictionStats(
            user_id=8, total=5, accurate=3, inaccurate=1, pending=1,
            avg_accuracy=Decimal("66.4"), reputation=12,
        )
        data = client.get(f"{API_PREFIX}/users/8/stats").json()
        assert data["accurate"] == 3
        assert data["avgAccuracy"] == 66.4

    def test_stats_unknown_user(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_user_stats.side_effect = UserNotFound(99)
        assert client.get(f"{API_PREFIX}/users/99/stats").status_code == 404

    def test_user_predictions(self, client: TestClient, manager: MagicMock) -> None:
        manager.get_user_predictions.return_value = [_prediction(), _prediction(id=12)]
        data = client.get(f"{API_PREFIX}/users/3/predictions").json()
        assert data["count"] == 2
        assert [p["id"] for p in data["predictions"]] == [11, 12]


# ------------------------------------------------------------------
# Stocks
# ------------------------------------------------------------------


class TestStocks:
    def test_list_active(self, client: TestClient, registry: MagicMock) -> None:
        registry.get_stocks.return_value = [Stock(symbol="AAPL", company_name="Apple Inc.", id=1)]
        data = client.get(f"{API_PREFIX}/stocks").json()
        assert data["count"] == 1
        assert data["stocks"][0]["sector"] is None
        registry.get_stocks.assert_called_once_with(active_only=True)

    def test_list_including_inactive(self, client: TestClient, registry: MagicMock) -> None:
        registry.get_stocks.return_value = []
        client.get(f"{API_PREFIX}/stocks?include_inactive=true")
        registry.get_stocks.assert_called_once_with(active_only=False)

    def test_add_stock(self, client: TestClient, registry: MagicMock) -> None:
        registry.add_stock.return_value = 5
        resp = client.post(
            f"{API_PREFIX}/stocks", json={"symbol": " nvda ", "company_name": "NVIDIA Corp"}
        )
        assert resp.status_code == 201
        assert resp.json() == {"id": 5, "symbol": "NVDA", "status": "stored"}
        stored = registry.add_stock.call_args[0][0]
        assert stored.symbol == "NVDA"

    def test_add_stock_bad_symbol(self, client: TestClient, registry: MagicMock) -> None:
        resp = client.post(
            f"{API_PREFIX}/stocks", json={"symbol": "NOT A TICKER", "company_name": "x"}
        )
        assert resp.status_code == 422
        registry.add_stock.assert_not_called()

    def test_prices(self, client: TestClient, registry: MagicMock) -> None:
        registry.get_stock_by_symbol.return_value = Stock(
            symbol="AAPL", company_name="Apple Inc.", id=1
        )
        registry.get_price_history.return_value = [
            PricePoint(symbol="AAPL", price_date=date(2025, 1, 31), close_price=Decimal("101.25"))
        ]
        data = client.get(f"{API_PREFIX}/stocks/aapl/prices?limit=5").json()
        assert data["symbol"] == "AAPL"
        assert data["prices"][0] == {
            "date": "2025-01-31",
            "open": None,
            "high": None,
            "low": None,
            "close": 101.25,
            "volume": None,
        }
        registry.get_price_history.assert_called_once_with("AAPL", limit=5)

    def test_prices_unknown_stock(self, client: TestClient, registry: MagicMock) -> None:
        registry.get_stock_by_symbol.return_value = None
        resp = client.get(f"{API_PREFIX}/stocks/ZZZZ/prices")
        assert resp.status_code == 404
        assert resp.json()["code"] == "STOCK_NOT_FOUND"


# ------------------------------------------------------------------
# System
# ------------------------------------------------------------------


class TestHealth:
    def test_healthy(self, client: TestClient, registry: MagicMock) -> None:
        registry.health_check.return_value = True
        registry.get_last_cron_run.return_value = {
            "started_at": datetime(2025, 3, 10, 2, 0),
            "finished_at": datetime(2025, 3, 10, 2, 1),
            "status": "success",
        }
        app_state.price_client = MagicMock(spec=YFinanceClient, is_healthy=True)

        data = client.get(f"{API_PREFIX}/system/health").json()
        assert data["status"] == "healthy"
        assert data["marketData"] is True
        assert data["lastEvaluation"]["status"] == "success"
        registry.get_last_cron_run.assert_called_once_with("evaluate-predictions")

    def test_degraded(self, client: TestClient, registry: MagicMock) -> None:
        registry.health_check.return_value = False
        data = client.get(f"{API_PREFIX}/system/health").json()
        assert data["status"] == "degraded"
        assert data["lastEvaluation"] is None
        assert data["marketData"] is None
        registry.get_last_cron_run.assert_not_called()
