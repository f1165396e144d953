"""Tests for database layer."""

import os
from unittest.mock import MagicMock, patch

import pytest


class TestGetConnPasswordFallback:
    """Tests for DB_PASSWORD fallback in get_conn() - no real DB needed."""

    def test_db_password_fallback_dsn_without_password(self):
        from tracking.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u host=h port=5432", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("tracking.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u host=h port=5432",
                password="from-env",
            )

    def test_db_password_not_used_when_dsn_has_password(self):
        from tracking.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u password=from-dsn host=h", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("tracking.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("dbname=db user=u password=from-dsn host=h")

    def test_db_password_fallback_url_without_password(self):
        from tracking.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("tracking.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u@h/db", password="from-env")

    def test_db_password_not_used_when_url_has_password(self):
        from tracking.infra.db import get_conn

        env = {"DATABASE_URL": "postgres://u:p@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("tracking.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u:p@h/db")

    def test_missing_database_url_raises(self):
        from tracking.infra.db import get_conn

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()


def _mock_pool():
    pool = MagicMock()
    pool.closed = False
    conn = MagicMock()
    conn.closed = 0
    pool.getconn.return_value = conn
    return pool, conn


class TestDatabasePool:
    """Tests for the pooled Database handle (pool is mocked)."""

    def test_requires_dsn(self):
        from tracking.infra.db import Database

        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            Database("")

    def test_open_creates_pool_once(self):
        from tracking.infra.db import Database

        pool, _ = _mock_pool()
        with patch("tracking.infra.db.ThreadedConnectionPool", return_value=pool) as mock_cls:
            db = Database("postgres://u@h/db", password="pw", minconn=2, maxconn=5, connect_timeout=3)
            db.open()
            db.open()

        mock_cls.assert_called_once_with(
            2,
            5,
            "postgres://u@h/db",
            connect_timeout=3,
            password="pw",
            options="-c statement_timeout=5000",
        )
        assert db.is_open is True

    def test_statement_timeout_disabled(self):
        from tracking.infra.db import Database

        pool, _ = _mock_pool()
        with patch("tracking.infra.db.ThreadedConnectionPool", return_value=pool) as mock_cls:
            Database("postgres://u:p@h/db", statement_timeout_ms=0).open()

        assert "options" not in mock_cls.call_args.kwargs

    def test_close_is_idempotent(self):
        from tracking.infra.db import Database

        pool, _ = _mock_pool()
        with patch("tracking.infra.db.ThreadedConnectionPool", return_value=pool):
            db = Database("postgres://u:p@h/db")
            db.open()
        db.close()
        db.close()

        pool.closeall.assert_called_once()
        assert db.is_open is False

    def test_connection_requires_open_pool(self):
        from tracking.infra.db import Database

        db = Database("postgres://u:p@h/db")
        with pytest.raises(RuntimeError, match="not open"):
            with db.connection():
                pass

    def test_txn_commits_and_returns_connection(self):
        from tracking.infra.db import Database

        pool, conn = _mock_pool()
        with patch("tracking.infra.db.ThreadedConnectionPool", return_value=pool):
            db = Database("postgres://u:p@h/db")
            db.open()

        with db.txn() as cur:
            cur.execute("SELECT 1")

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pool.putconn.assert_called_once_with(conn, close=False)

    def test_txn_rolls_back_on_error(self):
        from tracking.infra.db import Database

        pool, conn = _mock_pool()
        with patch("tracking.infra.db.ThreadedConnectionPool", return_value=pool):
            db = Database("postgres://u:p@h/db")
            db.open()

        with pytest.raises(ValueError):
            with db.txn():
                raise ValueError("boom")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn, close=False)

    def test_broken_connection_is_discarded(self):
        from tracking.infra.db import Database

        pool, conn = _mock_pool()
        conn.closed = 2
        with patch("tracking.infra.db.ThreadedConnectionPool", return_value=pool):
            db = Database("postgres://u:p@h/db")
            db.open()

        with pytest.raises(ValueError):
            with db.txn():
                raise ValueError("boom")

        conn.rollback.assert_not_called()
        pool.putconn.assert_called_once_with(conn, close=True)


# Skip integration tests if DATABASE_URL is not set
_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestTxn:
    """Tests for txn() against a real database."""

    def test_commit_on_success(self):
        from tracking.infra.db import txn

        with txn() as cur:
            cur.execute("SELECT 1 AS x")
            row = cur.fetchone()
        assert row[0] == 1

    def test_rollback_on_exception(self):
        from tracking.infra.db import txn

        with txn() as cur:
            cur.execute("CREATE TEMP TABLE IF NOT EXISTS _txn_scratch (x int)")

        with pytest.raises(ValueError):
            with txn() as cur:
                cur.execute("SELECT 1")
                raise ValueError("boom")

        with txn() as cur:
            cur.execute("SELECT 2")
            assert cur.fetchone()[0] == 2
