"""
Data bridge service.

Owns everything the API needs to reach storage: the validated connection
string, the resolved ConnectionSettings, the DatabasePool and the
DocumentStorage built on top of it. One instance is created at startup,
kept on app.state, and handed to route handlers through a dependency.

Startup never raises. A missing or placeholder DATABASE_URL, or a database
that cannot be reached, leaves the bridge in static-only mode: the process
keeps serving and data requests fail with structured errors.
"""

import logging
from typing import Any, Callable, Optional

import psycopg2

from db.connection_pool import DatabasePool
from db.db_config import check_database_url, get_database_url, get_pool_settings, is_production
from db.errors import ConfigurationError, StorageError
from db.resolver import ConnectionSettings, lookup_ipv4, resolve_connection
from db.storage.documents import DocumentStorage

logger = logging.getLogger(__name__)

PoolFactory = Callable[..., DatabasePool]


class DataBridge:
    """Process-wide storage service, built once and never rebuilt."""

    def __init__(
        self,
        database_url: Optional[str],
        *,
        production: bool = False,
        pool_settings: Optional[dict[str, int]] = None,
        lookup: Callable[[str], str] = lookup_ipv4,
        pool_factory: PoolFactory = DatabasePool,
    ) -> None:
        self.database_url = database_url
        self.production = production
        self.pool_settings = pool_settings or {}
        self._lookup = lookup
        self._pool_factory = pool_factory

        self.settings: Optional[ConnectionSettings] = None
        self.pool: Optional[DatabasePool] = None
        self.schema_ready = False
        self.startup_error: Optional[str] = None
        self.config_error: Optional[ConfigurationError] = None

        try:
            check_database_url(database_url)
        except ConfigurationError as exc:
            self.config_error = exc

        self.documents = DocumentStorage(config_error=self.config_error)

    @classmethod
    def from_env(cls) -> "DataBridge":
        return cls(
            get_database_url(),
            production=is_production(),
            pool_settings=get_pool_settings(),
        )

    @property
    def mode(self) -> str:
        return "postgres" if self.pool is not None else "static-only"

    def start(self) -> bool:
        """
        Resolve the connection target, open the pool and bootstrap the schema.

        Blocking; run it in a worker thread from async code.

        Returns:
            True if storage is fully available, False in degraded mode
        """
        if self.config_error is not None:
            logger.warning("Storage unavailable, serving in static-only mode: %s", self.config_error.message)
            return False

        settings = resolve_connection(self.database_url, production=self.production, lookup=self._lookup)
        self.settings = settings

        try:
            pool = self._pool_factory(settings, **self.pool_settings)
        except (psycopg2.Error, ValueError) as exc:
            self.startup_error = str(exc)
            logger.error("Could not create connection pool: %s", exc)
            return False

        self.pool = pool

        # requests keep failing with ConnectionError until the schema step is over
        try:
            DocumentStorage(pool).ensure_schema()
        except StorageError as exc:
            self.startup_error = exc.message
            self.documents.pool = pool
            logger.error("Schema bootstrap failed, storage degraded: %s", exc.message)
            return False

        self.documents.pool = pool
        self.schema_ready = True
        self.startup_error = None
        logger.info(
            "Postgres connected & schema verified (provider=%s, tls=%s)",
            settings.provider or "unknown",
            settings.tls_policy.value,
        )
        return True

    def close(self) -> None:
        if self.pool is not None:
            self.pool.close()

    def describe(self) -> dict[str, Any]:
        """Database section of the health response."""
        info: dict[str, Any] = {"type": "postgres", "mode": self.mode, "schema_ready": self.schema_ready}
        if self.settings is not None:
            info.update(self.settings.describe())
        if self.pool is not None:
            info["pool"] = self.pool.stats()
        return info
