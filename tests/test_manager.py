from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import psycopg
import pytest

from sovest.errors import (
    MissingReasoning,
    PredictionNotEditable,
    PredictionNotFound,
    UserNotFound,
    ValidationError,
)
from sovest.models.prediction import Direction, Prediction, PredictionDraft
from sovest.models.stock import Stock
from sovest.models.user import User, UserPredictionStats
from sovest.models.vote import VoteTally
from sovest.predictions.manager import TRENDING_MIN_ACCURACY, PredictionManager
from sovest.predictions.validator import PredictionValidator
from sovest.registry.queries import Registry

TODAY = date(2025, 3, 10)
AAPL = Stock(symbol="AAPL", company_name="Apple Inc.", id=1)


def _prediction(**overrides) -> Prediction:
    fields = dict(
        id=11,
        user_id=3,
        stock_id=1,
        symbol="AAPL",
        direction=Direction.BULLISH,
        end_date=date(2025, 4, 10),
        reasoning="Strong iPhone cycle",
    )
    fields.update(overrides)
    return Prediction(**fields)


@pytest.fixture
def registry() -> MagicMock:
    reg = MagicMock(spec=Registry)
    reg.user_exists.side_effect = lambda user_id: user_id == 3
    reg.get_stock.side_effect = {1: AAPL}.get
    reg.get_stock_by_symbol.side_effect = {"AAPL": AAPL}.get
    reg.insert_prediction.return_value = 11
    reg.get_prediction.side_effect = {11: _prediction()}.get
    return reg


@pytest.fixture
def manager(registry: MagicMock) -> PredictionManager:
    return PredictionManager(registry, PredictionValidator(registry, today=lambda: TODAY))


def _payload(**overrides) -> dict:
    payload = {
        "stock_id": 1,
        "prediction_type": "Bullish",
        "end_date": "2025-04-10",
        "reasoning": "Strong iPhone cycle",
    }
    payload.update(overrides)
    return payload


class TestCreatePrediction:
    def test_create_stores_validated_draft(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        prediction = manager.create_prediction(3, _payload())

        registry.insert_prediction.assert_called_once_with(
            3,
            PredictionDraft(
                stock_id=1,
                direction=Direction.BULLISH,
                end_date=date(2025, 4, 10),
                reasoning="Strong iPhone cycle",
            ),
        )
        assert prediction.id == 11
        assert prediction.is_active

    def test_unknown_user(self, manager: PredictionManager, registry: MagicMock) -> None:
        with pytest.raises(UserNotFound):
            manager.create_prediction(99, _payload())
        registry.insert_prediction.assert_not_called()

    def test_invalid_payload_not_stored(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        with pytest.raises(MissingReasoning):
            manager.create_prediction(3, _payload(reasoning=""))
        registry.insert_prediction.assert_not_called()

    def test_default_validator_built(self, registry: MagicMock) -> None:
        manager = PredictionManager(registry)
        assert isinstance(manager._validator, PredictionValidator)


class TestUpdatePrediction:
    def test_update_writes_merged_draft(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.update_active_prediction.return_value = True

        manager.update_prediction(11, {"target_price": "220"}, user_id=3)

        _, draft = registry.update_active_prediction.call_args[0]
        assert draft.target_price == Decimal("220.00")
        assert draft.reasoning == "Strong iPhone cycle"

    def test_missing_prediction(self, manager: PredictionManager) -> None:
        with pytest.raises(PredictionNotFound):
            manager.update_prediction(404, {"reasoning": "x"})

    def test_other_users_prediction_hidden(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        with pytest.raises(PredictionNotFound):
            manager.update_prediction(11, {"reasoning": "x"}, user_id=4)
        registry.update_active_prediction.assert_not_called()

    def test_evaluated_prediction_rejected(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        evaluated = _prediction(is_active=False, accuracy=Decimal("64.50"))
        registry.get_prediction.side_effect = {11: evaluated}.get
        with pytest.raises(PredictionNotEditable):
            manager.update_prediction(11, {"reasoning": "Too late"})
        registry.update_active_prediction.assert_not_called()

    def test_lost_race_with_evaluation(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.update_active_prediction.return_value = False
        with pytest.raises(PredictionNotEditable):
            manager.update_prediction(11, {"reasoning": "Updated"})


class TestDeleteAndRead:
    def test_delete(self, manager: PredictionManager, registry: MagicMock) -> None:
        registry.delete_prediction.return_value = True
        manager.delete_prediction(11, 3)
        registry.delete_prediction.assert_called_once_with(11, 3)

    def test_delete_missing_or_not_owned(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.delete_prediction.return_value = False
        with pytest.raises(PredictionNotFound):
            manager.delete_prediction(11, 4)

    def test_get_prediction_with_tally(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.get_vote_tally.return_value = VoteTally(prediction_id=11, upvotes=2)
        prediction, tally = manager.get_prediction(11)
        assert prediction.symbol == "AAPL"
        assert tally.upvotes == 2

    def test_get_prediction_missing(self, manager: PredictionManager) -> None:
        with pytest.raises(PredictionNotFound):
            manager.get_prediction(404)

    def test_user_predictions(self, manager: PredictionManager, registry: MagicMock) -> None:
        registry.get_user_predictions.return_value = [_prediction()]
        assert len(manager.get_user_predictions(3)) == 1

    def test_user_predictions_unknown_user(self, manager: PredictionManager) -> None:
        with pytest.raises(UserNotFound):
            manager.get_user_predictions(99)

    def test_trending_uses_accuracy_floor(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.get_trending_predictions.return_value = []
        manager.get_trending(limit=5)
        registry.get_trending_predictions.assert_called_once_with(
            limit=5, min_accuracy=TRENDING_MIN_ACCURACY
        )


class TestUsers:
    def test_register_user_normalizes_email(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.create_user.return_value = 8
        user = manager.register_user(" Ada@Example.com ", " Ada ", "Lovelace")
        assert user.id == 8
        assert user.email == "ada@example.com"
        assert user.display_name == "Ada Lovelace"
        assert user.reputation_score == 0

    def test_register_user_rejects_bad_email(self, manager: PredictionManager) -> None:
        with pytest.raises(ValidationError):
            manager.register_user("not-an-email")

    def test_register_duplicate_email(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.create_user.side_effect = psycopg.errors.UniqueViolation()
        with pytest.raises(ValidationError, match="already registered"):
            manager.register_user("ada@example.com")

    def test_get_user(self, manager: PredictionManager, registry: MagicMock) -> None:
        registry.get_user.return_value = User(
            email="ada@example.com", first_name="Ada", last_name="Lovelace", id=3
        )
        assert manager.get_user(3).display_name == "Ada Lovelace"

    def test_get_user_unknown(self, manager: PredictionManager, registry: MagicMock) -> None:
        registry.get_user.return_value = None
        with pytest.raises(UserNotFound):
            manager.get_user(99)

    def test_user_stats(self, manager: PredictionManager, registry: MagicMock) -> None:
        registry.get_user_prediction_stats.return_value = UserPredictionStats(
            user_id=3, total=4, accurate=2, inaccurate=1, pending=1, reputation=12
        )
        assert manager.get_user_stats(3).accurate == 2

    def test_user_stats_unknown_user(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.get_user_prediction_stats.return_value = None
        with pytest.raises(UserNotFound):
            manager.get_user_stats(99)

    def test_leaderboard_passthrough(
        self, manager: PredictionManager, registry: MagicMock
    ) -> None:
        registry.get_leaderboard.return_value = []
        assert manager.get_leaderboard(5) == []
        registry.get_leaderboard.assert_called_once_with(5)
