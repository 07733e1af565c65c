from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class DatabaseConfig:
    host: str
    port: int
    database: str
    user: str
    password: str

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class ScoringPolicy:
    """Tunable constants of the accuracy and reputation functions.

    reputation_tiers maps a minimum accuracy to the reputation points it
    earns, highest threshold first. Accuracy at or below poor_threshold
    costs poor_delta points; anything in between earns nothing.
    """

    flat_direction_score: Decimal = Decimal("50")
    precision_tolerance: Decimal = Decimal("0.20")
    max_precision_penalty: Decimal = Decimal("50")
    reputation_tiers: tuple[tuple[Decimal, int], ...] = (
        (Decimal("90"), 10),
        (Decimal("70"), 5),
        (Decimal("50"), 2),
    )
    poor_threshold: Decimal = Decimal("30")
    poor_delta: int = -2

    def __post_init__(self) -> None:
        if not (Decimal("0") <= self.flat_direction_score <= Decimal("100")):
            raise ValueError(
                f"flat_direction_score must be between 0 and 100, got {self.flat_direction_score}"
            )
        if self.precision_tolerance <= 0:
            raise ValueError(
                f"precision_tolerance must be > 0, got {self.precision_tolerance}"
            )
        if not (Decimal("0") <= self.max_precision_penalty <= Decimal("100")):
            raise ValueError(
                f"max_precision_penalty must be between 0 and 100, got {self.max_precision_penalty}"
            )
        if self.poor_delta > 0:
            raise ValueError(f"poor_delta must be <= 0, got {self.poor_delta}")

        # Thresholds and points must both descend or the mapping stops being monotonic
        previous: tuple[Decimal, int] | None = None
        for threshold, points in self.reputation_tiers:
            if points < 0:
                raise ValueError(f"tier points must be >= 0, got {points}")
            if threshold <= self.poor_threshold:
                raise ValueError(
                    f"tier threshold {threshold} must be above poor_threshold {self.poor_threshold}"
                )
            if previous is not None and (threshold >= previous[0] or points > previous[1]):
                raise ValueError("reputation_tiers must be sorted by descending threshold and points")
            previous = (threshold, points)


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    evaluation_interval_hours: int = 24
    price_max_gap_days: int = 7
    use_yfinance: bool = True
    cors_origins: tuple[str, ...] = ("http://localhost:5173",)
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _database_dsn() -> str:
    """DATABASE_URL wins; otherwise assemble one from the DB_* variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url:
        return url
    if not os.environ.get("DB_NAME"):
        return ""
    return DatabaseConfig(
        host=os.environ.get("DB_HOST", "localhost"),
        port=int(os.environ.get("DB_PORT", "5432")),
        database=os.environ["DB_NAME"],
        user=os.environ.get("DB_USER", "postgres"),
        password=os.environ.get("DB_PASSWORD", ""),
    ).dsn


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads .env file if present in the current directory.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    origins = os.environ.get("CORS_ORIGINS", "http://localhost:5173")

    return AppConfig(
        db_dsn=_database_dsn(),
        evaluation_interval_hours=int(os.environ.get("EVALUATION_INTERVAL_HOURS", "24")),
        price_max_gap_days=int(os.environ.get("PRICE_MAX_GAP_DAYS", "7")),
        use_yfinance=_flag("USE_YFINANCE", "true"),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        scoring=ScoringPolicy(
            flat_direction_score=Decimal(os.environ.get("SCORING_FLAT_SCORE", "50")),
            precision_tolerance=Decimal(os.environ.get("SCORING_PRECISION_TOLERANCE", "0.20")),
            max_precision_penalty=Decimal(os.environ.get("SCORING_MAX_PRECISION_PENALTY", "50")),
        ),
    )
