"""
Document storage over the single legislative_data table.

Every collection ("store") lives in the same table, keyed globally by id:
- id TEXT PRIMARY KEY (unique across all stores)
- store_name TEXT, the collection a record currently belongs to
- content JSONB, the record exactly as the client sent it
- updated_at TIMESTAMP, refreshed on every write

Writes are single-statement upserts; there are no multi-record transactions.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Optional

from psycopg2.extras import Json

from db.connection_pool import DatabasePool
from db.errors import ConfigurationError, QueryError, StorageConnectionError, ValidationError
from db.schema_constants import DOCUMENTS_TABLE, MAX_STORE_NAME_LENGTH, STORE_NAME_INDEX

logger = logging.getLogger(__name__)


# =============================================================================
# SQL
# =============================================================================

CREATE_TABLE_SQL = f"""
    CREATE TABLE IF NOT EXISTS {DOCUMENTS_TABLE} (
        id TEXT PRIMARY KEY,
        store_name TEXT NOT NULL,
        content JSONB NOT NULL,
        updated_at TIMESTAMP DEFAULT NOW()
    )
"""

CREATE_INDEX_SQL = f"CREATE INDEX IF NOT EXISTS {STORE_NAME_INDEX} ON {DOCUMENTS_TABLE}(store_name)"

CREATE_STATS_EXTENSION_SQL = "CREATE EXTENSION IF NOT EXISTS pg_stat_statements"

SELECT_BY_STORE_SQL = f"""
    SELECT content FROM {DOCUMENTS_TABLE}
    WHERE store_name = %s
    ORDER BY updated_at DESC
"""

UPSERT_SQL = f"""
    INSERT INTO {DOCUMENTS_TABLE} (id, store_name, content, updated_at)
    VALUES (%s, %s, %s, NOW())
    ON CONFLICT (id) DO UPDATE SET
        store_name = EXCLUDED.store_name,
        content = EXCLUDED.content,
        updated_at = NOW()
"""

DELETE_SQL = f"DELETE FROM {DOCUMENTS_TABLE} WHERE id = %s"

# No ORDER BY: rows come back in scan order
EXPORT_SQL = f"SELECT store_name, content FROM {DOCUMENTS_TABLE}"


# =============================================================================
# VALIDATION
# =============================================================================

def validate_store_name(name: str, allowed: Optional[Iterable[str]] = None) -> str:
    """
    Check a store name taken from a URL path.

    Args:
        name: Requested store name
        allowed: Optional whitelist; None accepts any well-formed name

    Raises:
        ValidationError: If the name is empty, too long, contains '/', or is
            not in the whitelist
    """
    if not name or not name.strip():
        raise ValidationError("Store name must not be empty")
    if len(name) > MAX_STORE_NAME_LENGTH:
        raise ValidationError(f"Store name longer than {MAX_STORE_NAME_LENGTH} characters")
    if "/" in name:
        raise ValidationError("Store name must not contain '/'")
    if allowed is not None and name not in allowed:
        raise ValidationError(f"Unknown store: {name}")
    return name


def record_id(record: Any) -> Any:
    """
    Extract the id of a record about to be written.

    Raises:
        ValidationError: If the record is not an object or has no usable id
    """
    if not isinstance(record, dict):
        raise ValidationError("Record must be a JSON object")
    value = record.get("id")
    if value is None or isinstance(value, bool) or value == "":
        raise ValidationError("Item missing ID")
    if not isinstance(value, (str, int)):
        raise ValidationError("Item ID must be a string or integer")
    return value


# =============================================================================
# STORAGE
# =============================================================================

class DocumentStorage:
    """
    Generic CRUD over the document table.

    The pool is attached once the bridge has resolved its connection
    settings; until then every operation fails with a structured error.
    """

    def __init__(
        self,
        pool: Optional[DatabasePool] = None,
        config_error: Optional[ConfigurationError] = None,
    ) -> None:
        self.pool = pool
        self.config_error = config_error

    def _require_pool(self) -> DatabasePool:
        if self.config_error is not None:
            raise self.config_error
        if self.pool is None:
            raise StorageConnectionError("Database pool not initialized")
        return self.pool

    def _query(self, sql: str, params: Optional[tuple] = None, *, fetch: bool = True) -> list[dict[str, Any]]:
        return self._require_pool().query(sql, params, fetch=fetch)

    # =========================================================================
    # SCHEMA
    # =========================================================================

    def ensure_schema(self) -> None:
        """
        Create the document table and store_name index if absent.

        Idempotent, safe to run on every startup.

        Raises:
            StorageError: If the table or index could not be created
        """
        try:
            self._query(CREATE_STATS_EXTENSION_SQL, fetch=False)
        except QueryError as exc:
            logger.debug("pg_stat_statements not available: %s", exc)

        self._query(CREATE_TABLE_SQL, fetch=False)
        self._query(CREATE_INDEX_SQL, fetch=False)
        logger.info("Schema verified: %s (index %s)", DOCUMENTS_TABLE, STORE_NAME_INDEX)

    # =========================================================================
    # READ
    # =========================================================================

    async def list_by_collection(self, store_name: str) -> list[Any]:
        """
        Fetch every record of a store, most recently updated first.

        Returns:
            List of content documents (empty if the store has no rows)
        """
        rows = await asyncio.to_thread(self._query, SELECT_BY_STORE_SQL, (store_name,))
        return [row["content"] for row in rows]

    async def export_all(self) -> dict[str, list[Any]]:
        """
        Read every row and group content by store name.

        Order within a store follows the table scan.
        """
        rows = await asyncio.to_thread(self._query, EXPORT_SQL)
        grouped: dict[str, list[Any]] = {}
        for row in rows:
            grouped.setdefault(row["store_name"], []).append(row["content"])
        return grouped

    # =========================================================================
    # WRITE
    # =========================================================================

    async def upsert(self, store_name: str, record: Any) -> Any:
        """
        Insert or replace a record keyed by its id.

        An existing id is moved to store_name and its content replaced.

        Returns:
            The record's id

        Raises:
            ValidationError: If the record has no id
        """
        item_id = record_id(record)
        await asyncio.to_thread(
            self._query,
            UPSERT_SQL,
            (str(item_id), store_name, Json(record)),
            fetch=False,
        )
        logger.debug("Upserted %s/%s", store_name, item_id)
        return item_id

    async def delete_by_id(self, item_id: str) -> str:
        """Delete a record by id. Deleting a missing id is not an error."""
        await asyncio.to_thread(self._query, DELETE_SQL, (str(item_id),), fetch=False)
        logger.debug("Deleted %s", item_id)
        return item_id

    def collection(self, store_name: str) -> "CollectionRepository":
        return CollectionRepository(self, store_name)


class CollectionRepository:
    """DocumentStorage bound to a single store name."""

    def __init__(self, storage: DocumentStorage, store_name: str) -> None:
        self.storage = storage
        self.store_name = store_name

    async def list_all(self) -> list[Any]:
        return await self.storage.list_by_collection(self.store_name)

    async def put(self, record: Any) -> Any:
        return await self.storage.upsert(self.store_name, record)

    async def delete(self, item_id: str) -> str:
        return await self.storage.delete_by_id(item_id)
