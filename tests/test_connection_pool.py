"""
Unit tests for db/connection_pool.py with psycopg2.connect replaced by a fake.
"""

import threading
import time

import psycopg2
import pytest

import db.connection_pool as connection_pool
from db.connection_pool import DatabasePool
from db.errors import QueryError, StorageConnectionError
from db.resolver import ConnectionSettings, TLSPolicy

DSN = "postgresql://u:p@db.example.org:5432/app"


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        error = self.conn.errors.get(sql)
        if error is not None:
            raise error
        self._rows = list(self.conn.result_rows)

    def fetchall(self):
        return self._rows


class FakeConnection:
    def __init__(self, dsn, **kwargs):
        self.dsn = dsn
        self.kwargs = kwargs
        self.closed = 0
        self.executed = []
        self.errors = {}
        self.result_rows = [{"content": {"id": "a1"}}]
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = 1


class FakeServer:
    """Counts and records connections opened through psycopg2.connect."""

    def __init__(self):
        self.opened = []
        self.connect_error = None

    def connect(self, dsn, **kwargs):
        if self.connect_error is not None:
            raise self.connect_error
        conn = FakeConnection(dsn, **kwargs)
        self.opened.append(conn)
        return conn


@pytest.fixture
def server(monkeypatch):
    fake = FakeServer()
    monkeypatch.setattr(connection_pool.psycopg2, "connect", fake.connect)
    return fake


def make_pool(**kwargs) -> DatabasePool:
    settings = ConnectionSettings(
        dsn=DSN,
        tls_policy=TLSPolicy.SERVER_NAME,
        original_host="db.example.org",
        transport_address="203.0.113.7",
        tls_server_name="db.example.org",
    )
    return DatabasePool(settings, **kwargs)


class TestConstruction:
    """Pool creation."""

    def test_opens_no_connections(self, server):
        make_pool()

        assert server.opened == []

    def test_passes_resolved_target_to_driver(self, server):
        pool = make_pool(connect_timeout=5)
        pool.query("SELECT 1")

        conn = server.opened[0]
        assert conn.dsn == DSN
        assert conn.kwargs == {
            "sslmode": "require",
            "hostaddr": "203.0.113.7",
            "host": "db.example.org",
            "connect_timeout": 5,
        }


class TestReuse:
    """Returned connections stay open for later checkouts."""

    def test_sequential_queries_share_one_connection(self, server):
        pool = make_pool()

        for _ in range(5):
            pool.query("SELECT 1")

        assert len(server.opened) == 1
        assert server.opened[0].closed == 0
        assert pool.stats()["idle_connections"] == 1

    def test_concurrent_checkouts_open_separate_connections(self, server):
        pool = make_pool(max_connections=3)

        with pool.connection() as first, pool.connection() as second:
            assert first is not second

        pool.query("SELECT 1")
        pool.query("SELECT 1")

        assert len(server.opened) == 2
        assert pool.stats()["idle_connections"] == 2

    def test_threads_never_exceed_the_cap(self, server):
        pool = make_pool(max_connections=2, connect_timeout=5)
        errors = []

        def worker():
            try:
                for _ in range(10):
                    pool.query("SELECT 1")
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(server.opened) <= 2


class TestQuery:
    """Statement execution and error translation."""

    def test_returns_rows_and_sets_statement_timeout(self, server):
        pool = make_pool(statement_timeout_ms=1500)

        rows = pool.query("SELECT content FROM t WHERE id = %s", ("a1",))

        conn = server.opened[0]
        assert rows == [{"content": {"id": "a1"}}]
        assert conn.executed[0] == ("SET LOCAL statement_timeout = %s", (1500,))
        assert conn.executed[1] == ("SELECT content FROM t WHERE id = %s", ("a1",))
        assert conn.commits == 1

    def test_fetch_false_returns_empty_list(self, server):
        pool = make_pool()

        assert pool.query("DELETE FROM t", fetch=False) == []

    def test_operational_error_becomes_connection_error_and_discards(self, server):
        pool = make_pool()
        pool.query("SELECT 1")
        conn = server.opened[0]
        conn.errors["SELECT 1"] = psycopg2.OperationalError("server closed the connection unexpectedly")

        with pytest.raises(StorageConnectionError, match="server closed the connection"):
            pool.query("SELECT 1")

        assert conn.closed
        assert pool.stats()["idle_connections"] == 0

    def test_unreachable_server_becomes_connection_error(self, server):
        pool = make_pool()
        server.connect_error = psycopg2.OperationalError("could not translate host name")

        with pytest.raises(StorageConnectionError, match="could not translate host name"):
            pool.query("SELECT 1")

    def test_engine_error_becomes_query_error(self, server):
        pool = make_pool()
        pool.query("SELECT 1")
        conn = server.opened[0]
        conn.errors["SELECT * FROM missing"] = psycopg2.ProgrammingError('relation "missing" does not exist')

        with pytest.raises(QueryError, match="does not exist"):
            pool.query("SELECT * FROM missing")

        # engine errors leave the connection usable
        assert not conn.closed
        assert conn.rollbacks >= 1
        pool.query("SELECT 1")
        assert len(server.opened) == 1


class TestIdleConnections:
    """Stale and expired connections are discarded on checkout."""

    def test_server_closed_connection_is_replaced(self, server):
        pool = make_pool()
        pool.query("SELECT 1")
        stale = server.opened[0]
        stale.closed = 2

        pool.query("SELECT 1")

        assert len(server.opened) == 2
        assert pool.stats()["idle_connections"] == 1

    def test_connection_idle_past_timeout_is_closed(self, server):
        pool = make_pool(idle_timeout=30)
        pool.query("SELECT 1")
        old = server.opened[0]
        pool._last_used[id(old)] = time.monotonic() - 60

        pool.query("SELECT 1")

        assert old.closed
        assert len(server.opened) == 2

    def test_recently_used_connection_is_kept(self, server):
        pool = make_pool(idle_timeout=30)
        pool.query("SELECT 1")
        pool.query("SELECT 1")

        assert len(server.opened) == 1
        assert not server.opened[0].closed


class TestCapacity:
    """Bounded concurrency."""

    def test_waits_then_fails_when_every_slot_is_taken(self, server):
        pool = make_pool(max_connections=1, connect_timeout=0.05)

        with pool.connection():
            started = time.monotonic()
            with pytest.raises(StorageConnectionError, match="Timed out"):
                pool.query("SELECT 1")
            assert time.monotonic() - started >= 0.04

    def test_slot_is_released_after_error(self, server):
        pool = make_pool(max_connections=1, connect_timeout=0.05)
        server.connect_error = psycopg2.OperationalError("connection refused")

        with pytest.raises(StorageConnectionError):
            pool.query("SELECT 1")

        server.connect_error = None
        assert pool.query("SELECT 1") == [{"content": {"id": "a1"}}]


class TestLifecycle:
    """close() and stats()."""

    def test_close_is_idempotent_and_rejects_queries(self, server):
        pool = make_pool()
        pool.query("SELECT 1")
        pool.close()
        pool.close()

        assert pool.closed is True
        assert server.opened[0].closed
        with pytest.raises(StorageConnectionError, match="closed"):
            pool.query("SELECT 1")

    def test_connection_returned_after_close_is_closed(self, server):
        pool = make_pool()

        with pool.connection() as conn:
            pool.close()

        assert conn.closed
        assert pool.stats()["idle_connections"] == 0

    def test_stats(self, server):
        pool = make_pool(max_connections=4, idle_timeout=15)

        stats = pool.stats()

        assert stats["max_connections"] == 4
        assert stats["idle_timeout"] == 15
        assert stats["idle_connections"] == 0
        assert stats["closed"] is False
