from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

from sovest.models.prediction import Direction, Prediction, PredictionDraft
from sovest.models.stock import PricePoint, Stock
from sovest.models.user import LeaderboardEntry, User, UserPredictionStats
from sovest.models.vote import Vote, VoteTally, VoteType
from sovest.registry.db import Database, Transaction

logger = logging.getLogger(__name__)

_PREDICTION_COLUMNS = (
    "p.prediction_id, p.user_id, p.stock_id, s.symbol, p.prediction_type, "
    "p.target_price, p.prediction_date, p.end_date, p.is_active, p.accuracy, p.reasoning"
)


def _dec(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class Registry:
    """Query layer bridging Python models and the sovest schema."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Group writes that must commit together (see Database.transaction)."""
        with self._db.transaction() as tx:
            yield tx

    def health_check(self) -> bool:
        return self._db.health_check()

    # ------------------------------------------------------------------
    # Users & reputation
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Register a user. Returns the user id."""
        rows = self._db.execute(
            "INSERT INTO sovest.users (email, first_name, last_name) "
            "VALUES (%s, %s, %s) RETURNING id",
            (user.email, user.first_name, user.last_name),
        )
        return rows[0]["id"]

    def get_user(self, user_id: int) -> User | None:
        rows = self._db.execute(
            "SELECT id, email, first_name, last_name, reputation_score, created_at "
            "FROM sovest.users WHERE id = %s",
            (user_id,),
        )
        if not rows:
            return None
        r = rows[0]
        return User(
            id=r["id"],
            email=r["email"],
            first_name=r["first_name"] or "",
            last_name=r["last_name"] or "",
            reputation_score=int(r["reputation_score"] or 0),
            created_at=r.get("created_at"),
        )

    def user_exists(self, user_id: int) -> bool:
        rows = self._db.execute("SELECT 1 AS ok FROM sovest.users WHERE id = %s", (user_id,))
        return bool(rows)

    def increment_reputation(
        self, user_id: int, delta: int, tx: Transaction | None = None
    ) -> bool:
        """Add delta to a user's reputation. False if the user does not exist.

        Always a relative increment so concurrent evaluations accumulate.
        """
        executor = tx if tx is not None else self._db
        count = executor.execute_rowcount(
            "UPDATE sovest.users SET reputation_score = reputation_score + %s WHERE id = %s",
            (delta, user_id),
        )
        return count > 0

    def get_leaderboard(self, limit: int = 10) -> list[LeaderboardEntry]:
        """Users by reputation with their prediction count and mean accuracy."""
        rows = self._db.execute(
            "SELECT u.id, u.first_name, u.last_name, u.reputation_score, "
            "COUNT(p.prediction_id) AS predictions_count, "
            "AVG(p.accuracy) AS avg_accuracy "
            "FROM sovest.users u "
            "LEFT JOIN sovest.predictions p ON p.user_id = u.id "
            "GROUP BY u.id "
            "ORDER BY u.reputation_score DESC, u.id "
            "LIMIT %s",
            (limit,),
        )
        return [
            LeaderboardEntry(
                user_id=r["id"],
                display_name=f"{r['first_name'] or ''} {r['last_name'] or ''}".strip(),
                reputation_score=int(r["reputation_score"] or 0),
                predictions_count=int(r["predictions_count"] or 0),
                avg_accuracy=(_dec(r["avg_accuracy"]) or Decimal("0")).quantize(Decimal("0.1")),
            )
            for r in rows
        ]

    def get_user_prediction_stats(
        self, user_id: int, accurate_threshold: Decimal = Decimal("50")
    ) -> UserPredictionStats | None:
        rows = self._db.execute(
            "SELECT u.reputation_score, "
            "COUNT(p.prediction_id) AS total, "
            "COUNT(p.prediction_id) FILTER (WHERE p.accuracy IS NULL) AS pending, "
            "COUNT(p.prediction_id) FILTER (WHERE p.accuracy >= %s) AS accurate, "
            "COUNT(p.prediction_id) FILTER (WHERE p.accuracy < %s) AS inaccurate, "
            "AVG(p.accuracy) AS avg_accuracy "
            "FROM sovest.users u "
            "LEFT JOIN sovest.predictions p ON p.user_id = u.id "
            "WHERE u.id = %s "
            "GROUP BY u.id",
            (accurate_threshold, accurate_threshold, user_id),
        )
        if not rows:
            return None
        r = rows[0]
        avg = _dec(r["avg_accuracy"])
        return UserPredictionStats(
            user_id=user_id,
            total=int(r["total"] or 0),
            accurate=int(r["accurate"] or 0),
            inaccurate=int(r["inaccurate"] or 0),
            pending=int(r["pending"] or 0),
            avg_accuracy=avg.quantize(Decimal("0.1")) if avg is not None else Decimal("0"),
            reputation=int(r["reputation_score"] or 0),
        )

    # ------------------------------------------------------------------
    # Stocks
    # ------------------------------------------------------------------

    def add_stock(self, stock: Stock) -> int:
        """Insert or update a stock by symbol. Returns the stock id."""
        rows = self._db.execute(
            "INSERT INTO sovest.stocks (symbol, company_name, sector, is_active) "
            "VALUES (%s, %s, %s, TRUE) "
            "ON CONFLICT (symbol) DO UPDATE SET "
            "company_name = EXCLUDED.company_name, "
            "sector = EXCLUDED.sector, "
            "is_active = TRUE "
            "RETURNING stock_id",
            (stock.symbol.upper(), stock.company_name, stock.sector or None),
        )
        return rows[0]["stock_id"]

    def deactivate_stock(self, symbol: str) -> bool:
        count = self._db.execute_rowcount(
            "UPDATE sovest.stocks SET is_active = FALSE WHERE symbol = %s",
            (symbol.upper(),),
        )
        return count > 0

    def get_stocks(self, active_only: bool = True) -> list[Stock]:
        where = "WHERE is_active = TRUE " if active_only else ""
        rows = self._db.execute(
            "SELECT stock_id, symbol, company_name, sector, is_active, created_at "
            f"FROM sovest.stocks {where}ORDER BY symbol"
        )
        return [self._row_to_stock(r) for r in rows]

    def get_stock(self, stock_id: int) -> Stock | None:
        rows = self._db.execute(
            "SELECT stock_id, symbol, company_name, sector, is_active, created_at "
            "FROM sovest.stocks WHERE stock_id = %s",
            (stock_id,),
        )
        return self._row_to_stock(rows[0]) if rows else None

    def get_stock_by_symbol(self, symbol: str) -> Stock | None:
        rows = self._db.execute(
            "SELECT stock_id, symbol, company_name, sector, is_active, created_at "
            "FROM sovest.stocks WHERE symbol = %s",
            (symbol.upper(),),
        )
        return self._row_to_stock(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Stock prices
    # ------------------------------------------------------------------

    def upsert_prices(self, points: list[PricePoint]) -> int:
        """Insert or refresh daily bars. Rows for unknown symbols are dropped."""
        query = """
            INSERT INTO sovest.stock_prices (
                stock_id, price_date, open_price, close_price, high_price, low_price, volume
            )
            SELECT stock_id, %s, %s, %s, %s, %s, %s
            FROM sovest.stocks WHERE symbol = %s
            ON CONFLICT (stock_id, price_date) DO UPDATE SET
                open_price = EXCLUDED.open_price,
                close_price = EXCLUDED.close_price,
                high_price = EXCLUDED.high_price,
                low_price = EXCLUDED.low_price,
                volume = EXCLUDED.volume
        """
        params = [
            (
                p.price_date, p.open_price, p.close_price, p.high_price,
                p.low_price, p.volume, p.symbol.upper(),
            )
            for p in points
        ]
        return self._db.execute_many(query, params)

    def get_close_on_or_before(self, symbol: str, on: date) -> PricePoint | None:
        """Most recent stored bar dated on or before the given day."""
        rows = self._db.execute(
            "SELECT s.symbol, sp.price_date, sp.open_price, sp.close_price, "
            "sp.high_price, sp.low_price, sp.volume "
            "FROM sovest.stock_prices sp "
            "JOIN sovest.stocks s ON s.stock_id = sp.stock_id "
            "WHERE s.symbol = %s AND sp.price_date <= %s "
            "ORDER BY sp.price_date DESC LIMIT 1",
            (symbol.upper(), on),
        )
        return self._row_to_price(rows[0]) if rows else None

    def get_price_history(self, symbol: str, limit: int = 30) -> list[PricePoint]:
        rows = self._db.execute(
            "SELECT s.symbol, sp.price_date, sp.open_price, sp.close_price, "
            "sp.high_price, sp.low_price, sp.volume "
            "FROM sovest.stock_prices sp "
            "JOIN sovest.stocks s ON s.stock_id = sp.stock_id "
            "WHERE s.symbol = %s "
            "ORDER BY sp.price_date DESC LIMIT %s",
            (symbol.upper(), limit),
        )
        return [self._row_to_price(r) for r in rows]

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    def insert_prediction(self, user_id: int, draft: PredictionDraft) -> int:
        """Persist a new active prediction. Returns the prediction id."""
        rows = self._db.execute(
            "INSERT INTO sovest.predictions "
            "(user_id, stock_id, prediction_type, target_price, end_date, reasoning, is_active) "
            "VALUES (%s, %s, %s, %s, %s, %s, TRUE) RETURNING prediction_id",
            (
                user_id,
                draft.stock_id,
                draft.direction.value,
                draft.target_price,
                draft.end_date,
                draft.reasoning,
            ),
        )
        return rows[0]["prediction_id"]

    def get_prediction(self, prediction_id: int) -> Prediction | None:
        rows = self._db.execute(
            f"SELECT {_PREDICTION_COLUMNS} "
            "FROM sovest.predictions p "
            "JOIN sovest.stocks s ON s.stock_id = p.stock_id "
            "WHERE p.prediction_id = %s",
            (prediction_id,),
        )
        return self._row_to_prediction(rows[0]) if rows else None

    def update_active_prediction(self, prediction_id: int, draft: PredictionDraft) -> bool:
        """Rewrite an active prediction. False if it was evaluated meanwhile."""
        count = self._db.execute_rowcount(
            "UPDATE sovest.predictions SET "
            "stock_id = %s, prediction_type = %s, target_price = %s, "
            "end_date = %s, reasoning = %s "
            "WHERE prediction_id = %s AND is_active = TRUE",
            (
                draft.stock_id,
                draft.direction.value,
                draft.target_price,
                draft.end_date,
                draft.reasoning,
                prediction_id,
            ),
        )
        return count > 0

    def delete_prediction(self, prediction_id: int, user_id: int) -> bool:
        count = self._db.execute_rowcount(
            "DELETE FROM sovest.predictions WHERE prediction_id = %s AND user_id = %s",
            (prediction_id, user_id),
        )
        return count > 0

    def get_user_predictions(self, user_id: int) -> list[Prediction]:
        rows = self._db.execute(
            f"SELECT {_PREDICTION_COLUMNS} "
            "FROM sovest.predictions p "
            "JOIN sovest.stocks s ON s.stock_id = p.stock_id "
            "WHERE p.user_id = %s "
            "ORDER BY p.prediction_date DESC",
            (user_id,),
        )
        return [self._row_to_prediction(r) for r in rows]

    def get_matured_predictions(self, as_of: date | None = None) -> list[Prediction]:
        """Active, unscored predictions whose end date has been reached."""
        target = as_of or date.today()
        rows = self._db.execute(
            f"SELECT {_PREDICTION_COLUMNS} "
            "FROM sovest.predictions p "
            "JOIN sovest.stocks s ON s.stock_id = p.stock_id "
            "WHERE p.is_active = TRUE AND p.accuracy IS NULL AND p.end_date <= %s "
            "ORDER BY p.end_date, p.prediction_id",
            (target,),
        )
        return [self._row_to_prediction(r) for r in rows]

    def mark_prediction_evaluated(
        self, prediction_id: int, accuracy: Decimal, tx: Transaction | None = None
    ) -> bool:
        """Compare-and-set the active -> evaluated transition.

        Returns False when no active row matched, i.e. another runner
        already evaluated this prediction.
        """
        executor = tx if tx is not None else self._db
        count = executor.execute_rowcount(
            "UPDATE sovest.predictions SET accuracy = %s, is_active = FALSE "
            "WHERE prediction_id = %s AND is_active = TRUE",
            (accuracy, prediction_id),
        )
        return count > 0

    def get_trending_predictions(
        self, limit: int = 15, min_accuracy: Decimal = Decimal("70")
    ) -> list[dict]:
        """Active or well-scored predictions ranked by upvotes, accuracy, recency."""
        return self._db.execute(
            "SELECT p.prediction_id, p.user_id, s.symbol, p.prediction_type, "
            "p.target_price, p.end_date, p.is_active, p.accuracy, p.prediction_date, "
            "u.first_name, u.last_name, u.reputation_score, "
            "COUNT(v.vote_id) FILTER (WHERE v.vote_type = 'upvote') AS upvotes, "
            "COUNT(v.vote_id) FILTER (WHERE v.vote_type = 'downvote') AS downvotes "
            "FROM sovest.predictions p "
            "JOIN sovest.users u ON u.id = p.user_id "
            "JOIN sovest.stocks s ON s.stock_id = p.stock_id "
            "LEFT JOIN sovest.prediction_votes v ON v.prediction_id = p.prediction_id "
            "WHERE p.is_active = TRUE OR p.accuracy >= %s "
            "GROUP BY p.prediction_id, s.symbol, u.id "
            "ORDER BY upvotes DESC, p.accuracy DESC NULLS LAST, p.prediction_date DESC "
            "LIMIT %s",
            (min_accuracy, limit),
        )

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def upsert_vote(self, prediction_id: int, user_id: int, vote_type: VoteType) -> None:
        """Record a vote; a repeat vote by the same user replaces the old one."""
        self._db.execute(
            "INSERT INTO sovest.prediction_votes (prediction_id, user_id, vote_type, vote_date) "
            "VALUES (%s, %s, %s, NOW()) "
            "ON CONFLICT (prediction_id, user_id) DO UPDATE SET "
            "vote_type = EXCLUDED.vote_type, vote_date = NOW()",
            (prediction_id, user_id, vote_type.value),
        )

    def delete_vote(self, prediction_id: int, user_id: int) -> bool:
        count = self._db.execute_rowcount(
            "DELETE FROM sovest.prediction_votes WHERE prediction_id = %s AND user_id = %s",
            (prediction_id, user_id),
        )
        return count > 0

    def get_vote(self, prediction_id: int, user_id: int) -> Vote | None:
        rows = self._db.execute(
            "SELECT vote_id, prediction_id, user_id, vote_type, vote_date "
            "FROM sovest.prediction_votes WHERE prediction_id = %s AND user_id = %s",
            (prediction_id, user_id),
        )
        if not rows:
            return None
        r = rows[0]
        return Vote(
            id=r["vote_id"],
            prediction_id=r["prediction_id"],
            user_id=r["user_id"],
            vote_type=VoteType(r["vote_type"]),
            voted_at=r.get("vote_date"),
        )

    def get_vote_tally(self, prediction_id: int) -> VoteTally:
        rows = self._db.execute(
            "SELECT "
            "COUNT(*) FILTER (WHERE vote_type = 'upvote') AS upvotes, "
            "COUNT(*) FILTER (WHERE vote_type = 'downvote') AS downvotes "
            "FROM sovest.prediction_votes WHERE prediction_id = %s",
            (prediction_id,),
        )
        if not rows:
            return VoteTally(prediction_id=prediction_id)
        return VoteTally(
            prediction_id=prediction_id,
            upvotes=int(rows[0]["upvotes"] or 0),
            downvotes=int(rows[0]["downvotes"] or 0),
        )

    # ------------------------------------------------------------------
    # Cron audit
    # ------------------------------------------------------------------

    def log_cron_start(self, job_name: str) -> int:
        """Log the start of a cron job. Returns cron_run id."""
        rows = self._db.execute(
            "INSERT INTO sovest.cron_runs (job_name, started_at, status) "
            "VALUES (%s, NOW(), 'running') RETURNING id",
            (job_name,),
        )
        return rows[0]["id"]

    def log_cron_finish(self, cron_id: int, status: str, error: str | None = None) -> None:
        """Log the completion of a cron job."""
        self._db.execute(
            "UPDATE sovest.cron_runs SET finished_at = NOW(), status = %s, error = %s WHERE id = %s",
            (status, error, cron_id),
        )

    def get_last_cron_run(self, job_name: str) -> dict | None:
        rows = self._db.execute(
            "SELECT id, job_name, started_at, finished_at, status, error "
            "FROM sovest.cron_runs WHERE job_name = %s ORDER BY id DESC LIMIT 1",
            (job_name,),
        )
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Row mappers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_prediction(r: dict) -> Prediction:
        return Prediction(
            id=r["prediction_id"],
            user_id=r["user_id"],
            stock_id=r["stock_id"],
            symbol=r.get("symbol"),
            direction=Direction(r["prediction_type"]),
            target_price=_dec(r.get("target_price")),
            created_at=r.get("prediction_date"),
            end_date=r["end_date"],
            is_active=bool(r["is_active"]),
            accuracy=_dec(r.get("accuracy")),
            reasoning=r.get("reasoning") or "",
        )

    @staticmethod
    def _row_to_stock(r: dict) -> Stock:
        return Stock(
            id=r["stock_id"],
            symbol=r["symbol"],
            company_name=r["company_name"],
            sector=r.get("sector") or "",
            is_active=bool(r.get("is_active", True)),
            created_at=r.get("created_at"),
        )

    @staticmethod
    def _row_to_price(r: dict) -> PricePoint:
        return PricePoint(
            symbol=r["symbol"],
            price_date=r["price_date"],
            close_price=Decimal(str(r["close_price"])),
            open_price=_dec(r.get("open_price")),
            high_price=_dec(r.get("high_price")),
            low_price=_dec(r.get("low_price")),
            volume=int(r["volume"]) if r.get("volume") is not None else None,
        )
