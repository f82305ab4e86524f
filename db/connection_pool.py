"""
Database Connection Pool Manager
=================================

Provides a bounded, thread-safe pool of psycopg2 connections for the data bridge.

Features:
- Lazy connection establishment (constructing the pool opens nothing)
- Returned connections are kept idle and reused by later checkouts
- Hard cap on concurrent connections (default 10); callers beyond the cap
  wait up to the connect timeout and then fail instead of hanging
- Idle lifetime: connections unused for longer than the idle timeout are
  closed on the next checkout instead of being reused
- Stale/broken idle connections are logged and discarded, never raised
- Per-statement timeout via SET LOCAL statement_timeout
- Driver errors translated into the storage error taxonomy

Usage:
    pool = DatabasePool(settings, **get_pool_settings())

    rows = pool.query("SELECT content FROM legislative_data WHERE id = %s", ("a1",))

    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
"""

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

import psycopg2
from psycopg2.extras import RealDictCursor

from db.errors import QueryError, StorageConnectionError
from db.resolver import ConnectionSettings

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

MAX_CONNECTIONS = 10
IDLE_TIMEOUT = 30
CONNECTION_TIMEOUT = 10
STATEMENT_TIMEOUT_MS = 30000

_CONNECTION_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


def _error_message(exc: BaseException) -> str:
    message = getattr(exc, "pgerror", None) or str(exc)
    return message.strip() or exc.__class__.__name__


class DatabasePool:
    """
    Bounded connection pool built from resolved ConnectionSettings.

    One instance is created at startup and shared by every request. Every
    connection is either checked out (at most max_connections, enforced by
    a semaphore) or idle in self._idle, so the idle set never exceeds the cap.
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        *,
        max_connections: int = MAX_CONNECTIONS,
        idle_timeout: float = IDLE_TIMEOUT,
        connect_timeout: float = CONNECTION_TIMEOUT,
        statement_timeout_ms: int = STATEMENT_TIMEOUT_MS,
    ) -> None:
        self.settings = settings
        self.max_connections = max_connections
        self.idle_timeout = idle_timeout
        self.connect_timeout = connect_timeout
        self.statement_timeout_ms = statement_timeout_ms

        self._slots = threading.BoundedSemaphore(max_connections)
        self._idle: deque = deque()
        self._last_used: dict[int, float] = {}
        self._lock = threading.Lock()
        self._closed = False

        self._connect_kwargs = {
            **settings.connect_kwargs(),
            "connect_timeout": max(1, int(connect_timeout)),
        }

        logger.info(
            "Database connection pool created: max=%d, idle_timeout=%ss, connect_timeout=%ss, tls=%s",
            max_connections,
            idle_timeout,
            connect_timeout,
            settings.tls_policy.value,
        )

    # -------------------------------------------------------------------------
    # Checkout / return
    # -------------------------------------------------------------------------

    def _connect(self):
        try:
            conn = psycopg2.connect(self.settings.dsn, **self._connect_kwargs)
        except _CONNECTION_ERRORS as exc:
            raise StorageConnectionError(_error_message(exc)) from exc
        logger.debug("Opened new database connection")
        return conn

    def _is_expired(self, conn) -> bool:
        with self._lock:
            last_used = self._last_used.get(id(conn))
        if last_used is None:
            return False
        return (time.monotonic() - last_used) > self.idle_timeout

    def _discard(self, conn) -> None:
        """Close a connection and forget it, logging any error."""
        with self._lock:
            self._last_used.pop(id(conn), None)
        try:
            conn.close()
        except psycopg2.Error as exc:
            logger.warning("Error discarding idle connection: %s", exc)

    def _checkout(self):
        while True:
            with self._lock:
                conn = self._idle.pop() if self._idle else None
            if conn is None:
                return self._connect()

            if conn.closed:
                logger.warning("Idle connection was closed by the server, discarding")
                self._discard(conn)
                continue
            if self._is_expired(conn):
                logger.debug("Closing connection idle longer than %ss", self.idle_timeout)
                self._discard(conn)
                continue
            return conn

    def _return(self, conn, *, broken: bool = False) -> None:
        if broken or conn.closed or self._closed:
            self._discard(conn)
            return
        try:
            conn.rollback()
        except psycopg2.Error as exc:
            logger.warning("Error returning connection to pool: %s", exc)
            self._discard(conn)
            return
        with self._lock:
            if not self._closed:
                self._last_used[id(conn)] = time.monotonic()
                self._idle.append(conn)
                return
        self._discard(conn)

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """
        Borrow a connection for the duration of a with block.

        Raises:
            StorageConnectionError: If the pool is closed, no slot frees up
                within the connect timeout, or the server is unreachable
        """
        if self._closed:
            raise StorageConnectionError("Connection pool is closed")

        if not self._slots.acquire(timeout=self.connect_timeout):
            raise StorageConnectionError(
                f"Timed out after {self.connect_timeout}s waiting for a database connection"
            )

        conn = None
        broken = False
        try:
            conn = self._checkout()
            yield conn
        except _CONNECTION_ERRORS:
            broken = True
            raise
        finally:
            if conn is not None:
                self._return(conn, broken=broken)
            self._slots.release()

    # -------------------------------------------------------------------------
    # Query execution
    # -------------------------------------------------------------------------

    def query(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        *,
        fetch: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Execute a single parameterized statement and commit.

        Args:
            sql: Statement with %s placeholders
            params: Statement parameters
            fetch: Whether to return the result rows

        Returns:
            Result rows as dicts (empty list when fetch is False)

        Raises:
            StorageConnectionError: Network, DNS or timeout failures
            QueryError: Anything else the database reports
        """
        try:
            with self.connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    if self.statement_timeout_ms:
                        cur.execute("SET LOCAL statement_timeout = %s", (int(self.statement_timeout_ms),))
                    cur.execute(sql, params)
                    rows = [dict(row) for row in cur.fetchall()] if fetch else []
                conn.commit()
                return rows
        except _CONNECTION_ERRORS as exc:
            # also covers QueryCanceled (statement_timeout), an OperationalError subclass
            raise StorageConnectionError(_error_message(exc)) from exc
        except psycopg2.Error as exc:
            raise QueryError(_error_message(exc), pgcode=exc.pgcode) from exc

    def ping(self) -> None:
        """Round-trip a trivial query."""
        self.query("SELECT 1")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """
        Close every idle connection (for graceful shutdown).

        Connections checked out at this point are closed when returned.
        """
        if self._closed:
            return
        logger.info("Closing all database connections in pool")
        with self._lock:
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
        for conn in idle:
            self._discard(conn)

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> dict[str, Any]:
        """Get pool sizing for health output."""
        with self._lock:
            idle = len(self._idle)
        return {
            "max_connections": self.max_connections,
            "idle_connections": idle,
            "idle_timeout": self.idle_timeout,
            "connect_timeout": self.connect_timeout,
            "statement_timeout_ms": self.statement_timeout_ms,
            "closed": self._closed,
        }
