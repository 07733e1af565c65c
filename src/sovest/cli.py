"""CLI entry point for SoVest.

Provides commands for operating the prediction service:
  - migrate: Run database migrations
  - evaluate: Score every matured prediction
  - refresh-prices: Pull recent daily bars for active stocks
  - add-stock: Add or reactivate a stock
  - deactivate-stock: Stop new predictions on a stock
  - leaderboard: Show top users by reputation
  - stats: Show one user's prediction record
  - cron: Run a scheduled job with audit logging
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from pathlib import Path

from sovest.config import AppConfig, load_config
from sovest.data.price_history import StoredPriceHistory
from sovest.data.refresh import PriceRefresher
from sovest.data.yfinance_client import YFinanceClient
from sovest.models.stock import Stock
from sovest.predictions.engine import ScoringEngine
from sovest.predictions.manager import PredictionManager
from sovest.predictions.validator import normalize_symbol
from sovest.registry.db import Database
from sovest.registry.queries import Registry

CRON_JOBS = ("evaluate-predictions", "refresh-prices")


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _build_engine(config: AppConfig, registry: Registry) -> ScoringEngine:
    client = YFinanceClient() if config.use_yfinance else None
    prices = StoredPriceHistory(registry, client, max_gap_days=config.price_max_gap_days)
    return ScoringEngine(registry, prices, config.scoring)


def _run_evaluation(config: AppConfig, registry: Registry, as_of: date | None = None) -> dict:
    report = _build_engine(config, registry).evaluate_active_predictions(as_of)
    return report.as_dict()


def _run_price_refresh(registry: Registry, days: int) -> dict[str, bool]:
    return PriceRefresher(registry, YFinanceClient()).refresh(days=days)


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    config = load_config()
    with Database(config.db_dsn) as db:
        migrations_dir = str(Path(__file__).parent / "registry" / "migrations")
        applied = db.run_migrations(migrations_dir)
    for name in applied:
        print(f"  applied {name}")
    print(f"Migrations complete ({len(applied)} applied).")


def cmd_evaluate(args: argparse.Namespace) -> None:
    """Evaluate matured predictions and update reputations."""
    config = load_config()
    as_of = date.fromisoformat(args.as_of) if args.as_of else None
    if as_of is not None and as_of > date.today():
        print(f"--as-of {as_of.isoformat()} is in the future")
        raise SystemExit(2)
    with Database(config.db_dsn) as db:
        result = _run_evaluation(config, Registry(db), as_of)
    print(json.dumps(result, indent=2))


def cmd_refresh_prices(args: argparse.Namespace) -> None:
    """Download recent daily bars for every active stock."""
    config = load_config()
    with Database(config.db_dsn) as db:
        results = _run_price_refresh(Registry(db), args.days)
    updated = sum(1 for ok in results.values() if ok)
    print(f"Updated {updated}/{len(results)} stocks")
    for symbol, ok in sorted(results.items()):
        if not ok:
            print(f"  !! {symbol}: no data")


def cmd_add_stock(args: argparse.Namespace) -> None:
    """Add a stock to the tracked universe."""
    config = load_config()
    symbol = normalize_symbol(args.symbol)
    with Database(config.db_dsn) as db:
        stock_id = Registry(db).add_stock(
            Stock(symbol=symbol, company_name=args.name, sector=args.sector or "")
        )
    print(f"{symbol} stored (id={stock_id})")


def cmd_deactivate_stock(args: argparse.Namespace) -> None:
    """Stop accepting new predictions on a stock."""
    config = load_config()
    symbol = normalize_symbol(args.symbol)
    with Database(config.db_dsn) as db:
        found = Registry(db).deactivate_stock(symbol)
    print(f"{symbol} deactivated" if found else f"{symbol} not found")


def cmd_leaderboard(args: argparse.Namespace) -> None:
    """Show the top users by reputation."""
    config = load_config()
    with Database(config.db_dsn) as db:
        entries = PredictionManager(Registry(db)).get_leaderboard(args.limit)

    if not entries:
        print("No users yet.")
        return
    for i, e in enumerate(entries, 1):
        print(
            f"  {i:2d}. {e.display_name or f'user {e.user_id}':24s} "
            f"rep={e.reputation_score:5d} "
            f"predictions={e.predictions_count:4d} "
            f"avg={e.avg_accuracy}%"
        )


def cmd_stats(args: argparse.Namespace) -> None:
    """Show a user's prediction record."""
    config = load_config()
    with Database(config.db_dsn) as db:
        stats = PredictionManager(Registry(db)).get_user_stats(args.user_id)
    print(f"User {stats.user_id}")
    print(f"  Reputation: {stats.reputation}")
    print(f"  Predictions: {stats.total} ({stats.pending} pending)")
    print(f"  Accurate: {stats.accurate}  Inaccurate: {stats.inaccurate}")
    print(f"  Average accuracy: {stats.avg_accuracy}%")


def cmd_cron(args: argparse.Namespace) -> None:
    """Run a scheduled job with audit logging."""
    config = load_config()
    job = args.job

    with Database(config.db_dsn) as db:
        registry = Registry(db)
        cron_id = registry.log_cron_start(job)
        logging.info("Cron job %s started (id=%d)", job, cron_id)

        try:
            if job == "evaluate-predictions":
                result = _run_evaluation(config, registry)
                msg = (
                    f"Evaluated {result['evaluated']}/{result['total']} predictions "
                    f"({result['errors']} errors, {result['skipped']} skipped)"
                )
            elif job == "refresh-prices":
                results = _run_price_refresh(registry, args.days)
                updated = sum(1 for ok in results.values() if ok)
                msg = f"Price refresh: {updated}/{len(results)} stocks updated"
            else:
                print(f"Unknown cron job: {job}")
                registry.log_cron_finish(cron_id, "error", f"Unknown job: {job}")
                return

            logging.info(msg)
            print(msg)
            registry.log_cron_finish(cron_id, "success")
            logging.info("Cron job %s completed successfully", job)

        except Exception as e:
            logging.exception("Cron job %s failed", job)
            registry.log_cron_finish(cron_id, "error", str(e))
            raise


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="sovest",
        description="Stock prediction tracking, scoring and reputation",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subs = parser.add_subparsers(dest="command", required=True)

    # migrate
    subs.add_parser("migrate", help="Run database migrations")

    # evaluate
    p_eval = subs.add_parser("evaluate", help="Evaluate matured predictions")
    p_eval.add_argument("--as-of", help="Evaluate as of this date (YYYY-MM-DD, default today)")

    # refresh-prices
    p_refresh = subs.add_parser("refresh-prices", help="Refresh stored stock prices")
    p_refresh.add_argument("--days", type=int, default=10, help="Days of history to fetch")

    # add-stock
    p_stock = subs.add_parser("add-stock", help="Add or reactivate a stock")
    p_stock.add_argument("symbol", help="Ticker symbol")
    p_stock.add_argument("name", help="Company name")
    p_stock.add_argument("--sector", default="", help="Sector")

    # deactivate-stock
    p_deact = subs.add_parser("deactivate-stock", help="Deactivate a stock")
    p_deact.add_argument("symbol", help="Ticker symbol")

    # leaderboard
    p_board = subs.add_parser("leaderboard", help="Show top users by reputation")
    p_board.add_argument("--limit", type=int, default=10, help="Number of users")

    # stats
    p_stats = subs.add_parser("stats", help="Show a user's prediction stats")
    p_stats.add_argument("user_id", type=int, help="User id")

    # cron
    p_cron = subs.add_parser("cron", help="Run a scheduled job")
    p_cron.add_argument("job", choices=CRON_JOBS, help="Cron job to run")
    p_cron.add_argument("--days", type=int, default=10, help="Days of history (refresh-prices)")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "migrate": cmd_migrate,
        "evaluate": cmd_evaluate,
        "refresh-prices": cmd_refresh_prices,
        "add-stock": cmd_add_stock,
        "deactivate-stock": cmd_deactivate_stock,
        "leaderboard": cmd_leaderboard,
        "stats": cmd_stats,
        "cron": cmd_cron,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
