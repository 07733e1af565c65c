from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType

import psycopg
from psycopg.rows import dict_row

try:
    from psycopg_pool import ConnectionPool

    HAS_POOL = True
except ImportError:
    HAS_POOL = False

logger = logging.getLogger(__name__)

# Lives outside the sovest schema so it can exist before the first migration creates it
MIGRATIONS_TABLE = "sovest_migrations"


def _rows(cur: psycopg.Cursor) -> list[dict]:
    if cur.description is None:
        return []
    return [dict(row) for row in cur.fetchall()]


def _rowcount(cur: psycopg.Cursor) -> int:
    return cur.rowcount if cur.rowcount >= 0 else 0


class Transaction:
    """Cursor-bound handle; every statement commits or rolls back together."""

    def __init__(self, cursor: psycopg.Cursor) -> None:
        self._cur = cursor

    def execute(self, query: str, params: tuple | None = None) -> list[dict]:
        self._cur.execute(query, params)
        return _rows(self._cur)

    def execute_rowcount(self, query: str, params: tuple | None = None) -> int:
        self._cur.execute(query, params)
        return _rowcount(self._cur)


class Database:
    """PostgreSQL access for SoVest over psycopg3.

    Single statements commit on their own; `transaction()` groups several
    statements so they commit or roll back together.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: ConnectionPool | None = None
        self._conn: psycopg.Connection | None = None

    def connect(self) -> None:
        if HAS_POOL:
            self._pool = ConnectionPool(self._dsn, kwargs={"row_factory": dict_row})
            self._pool.wait()
            logger.info("Connection pool established")
        else:
            self._conn = psycopg.connect(self._dsn, row_factory=dict_row)
            logger.info("Single connection established (psycopg_pool not available)")

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        """Borrow a pooled connection, or the single one, for one unit of work."""
        if self._pool is not None:
            conn = self._pool.getconn()
        elif self._conn is not None:
            conn = self._conn
        else:
            raise RuntimeError("Database not connected. Call connect() first.")
        try:
            yield conn
        finally:
            if self._pool is not None:
                self._pool.putconn(conn)

    @contextmanager
    def _committing_cursor(self) -> Iterator[psycopg.Cursor]:
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def execute(self, query: str, params: tuple | None = None) -> list[dict]:
        """Run one statement and return its rows as dicts (empty for writes)."""
        with self._committing_cursor() as cur:
            cur.execute(query, params)
            return _rows(cur)

    def execute_rowcount(self, query: str, params: tuple | None = None) -> int:
        """Run one write and return how many rows it touched."""
        with self._committing_cursor() as cur:
            cur.execute(query, params)
            return _rowcount(cur)

    def execute_many(self, query: str, params_seq: list[tuple]) -> int:
        """Run a statement once per parameter tuple in a single commit."""
        with self._committing_cursor() as cur:
            count = 0
            for params in params_seq:
                cur.execute(query, params)
                count += _rowcount(cur)
            return count

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run several statements atomically.

        Commits when the block exits normally, rolls back if it raises.
        """
        with self._connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    yield Transaction(cur)

    def run_migrations(self, migrations_dir: str | Path) -> list[str]:
        """Apply pending .sql files in filename order.

        Each file is applied in its own transaction together with its
        bookkeeping row, so a failing file leaves no partial schema behind.
        Returns the filenames applied by this call.
        """
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} ("
                    "filename TEXT PRIMARY KEY, applied_at TIMESTAMPTZ DEFAULT NOW())"
                )
                cur.execute(f"SELECT filename FROM {MIGRATIONS_TABLE} ORDER BY filename")
                done = {row["filename"] for row in cur.fetchall()}
            conn.commit()

            pending = [p for p in sorted(Path(migrations_dir).glob("*.sql")) if p.name not in done]
            for sql_file in pending:
                logger.info("Applying migration %s", sql_file.name)
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(sql_file.read_text())
                        cur.execute(
                            f"INSERT INTO {MIGRATIONS_TABLE} (filename) VALUES (%s)",
                            (sql_file.name,),
                        )

        if not pending:
            logger.info("Schema up to date (%d migrations applied earlier)", len(done))
        return [p.name for p in pending]

    def health_check(self) -> bool:
        try:
            result = self.execute("SELECT 1 AS ok")
        except Exception:
            logger.exception("Database health check failed")
            return False
        return bool(result) and result[0].get("ok") == 1

    def __enter__(self) -> Database:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
