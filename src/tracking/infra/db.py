"""Database access layer using psycopg2.

Provides:
- get_conn(): one-off connection from DATABASE_URL (scripts, tests)
- Database: pooled handle owned by the worker process (open/close lifecycle)
- txn(): context manager for short, safe transactions
"""

import os
import re
from contextlib import contextmanager
from typing import Any, Iterator
from urllib.parse import urlparse

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor
from psycopg2.pool import ThreadedConnectionPool

from tracking.observability.logging import get_logger

logger = get_logger(__name__)

_DSN_PASSWORD = re.compile(r"(^|\s)password=")


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return bool(_DSN_PASSWORD.search(dsn))


def connect_kwargs(dsn: str, db_password: str = "") -> dict[str, Any]:
    """Extra psycopg2.connect kwargs: DB_PASSWORD only when the DSN has none."""
    if db_password and not _dsn_has_password(dsn):
        return {"password": db_password}
    return {}


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    DB_PASSWORD is used when the DSN itself carries no password.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")
    return psycopg2.connect(dsn, **connect_kwargs(dsn, os.environ.get("DB_PASSWORD", "")))


class Database:
    """Connection pool handle, created at process start and closed on shutdown.

    Safe to share across worker threads; each transaction borrows its own
    connection.

    Usage:
        db = Database(dsn, maxconn=20)
        db.open()
        with db.txn() as cur:
            cur.execute("SELECT 1")
        db.close()
    """

    def __init__(
        self,
        dsn: str,
        *,
        password: str = "",
        minconn: int = 1,
        maxconn: int = 20,
        connect_timeout: int = 2,
        statement_timeout_ms: int = 5000,
    ) -> None:
        if not dsn:
            raise RuntimeError("DATABASE_URL environment variable not set")
        self._dsn = dsn
        self._kwargs: dict[str, Any] = {
            "connect_timeout": connect_timeout,
            **connect_kwargs(dsn, password),
        }
        # Server-side cap per statement; a timed out write raises QueryCanceled
        if statement_timeout_ms > 0:
            self._kwargs["options"] = f"-c statement_timeout={statement_timeout_ms}"
        self._minconn = minconn
        self._maxconn = maxconn
        self._pool: ThreadedConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None and not self._pool.closed

    def open(self) -> None:
        """Create the pool. Idempotent."""
        if self.is_open:
            return
        self._pool = ThreadedConnectionPool(
            self._minconn, self._maxconn, self._dsn, **self._kwargs
        )
        logger.info(
            "database pool opened",
            extra={"extra_fields": {"minconn": self._minconn, "maxconn": self._maxconn}},
        )

    def close(self) -> None:
        """Close every pooled connection. Idempotent."""
        if self._pool is None:
            return
        if not self._pool.closed:
            self._pool.closeall()
            logger.info("database pool closed")
        self._pool = None

    @contextmanager
    def connection(self) -> Iterator[PgConnection]:
        """Borrow a pooled connection; broken connections are discarded."""
        if self._pool is None:
            raise RuntimeError("Database pool is not open")
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn, close=bool(conn.closed))

    @contextmanager
    def txn(self, cursor_factory: Any = None) -> Iterator[PgCursor]:
        """Transaction on a pooled connection. See txn()."""
        with self.connection() as conn:
            with txn(conn, cursor_factory=cursor_factory) as cur:
                yield cur


@contextmanager
def txn(conn: PgConnection | None = None, cursor_factory: Any = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception. cursor_factory
    (e.g. RealDictCursor) is passed through to conn.cursor().

    Example:
        with txn() as cur:
            cur.execute("INSERT INTO t (x) VALUES (%s)", (1,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor(cursor_factory=cursor_factory) as cur:
            yield cur
        conn.commit()
    except Exception:
        if not conn.closed:
            conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()
