"""
Snapshot Service Module.

Export/import of the whole document store, used for backup and restore:
- export_snapshot: every store in one versioned, timestamped document
- import_snapshot: replays every record through DocumentStorage.upsert
- write_backup: persists a snapshot as JSON on the server's disk
- seed_default_accounts: restores the default administrator account

Restoring is not a separate write path. Upserts are idempotent and keyed by
id, so replaying a snapshot in any order yields the same final state.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from collections.abc import Iterable
from typing import Any, Mapping, Optional

from db.errors import StorageError, ValidationError
from db.schema_constants import USER_ACCOUNTS_STORE
from db.storage.documents import DocumentStorage, record_id, validate_store_name

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

SNAPSHOT_VERSION = "1.0-EXPORT"
BACKUP_FILE_PREFIX = "cls_backup_"

DEFAULT_USER_ACCOUNTS: tuple[dict[str, Any], ...] = (
    {
        "id": "user-001",
        "userId": "admin",
        "name": "Admin User",
        "position": "System Administrator",
        "email": "admin@example.com",
        "password": "password123",
        "role": "admin",
        "status": "Active",
    },
)


# =============================================================================
# DATACLASSES
# =============================================================================

@dataclass
class ImportResult:
    imported: int = 0
    stores: dict[str, int] = field(default_factory=dict)


# =============================================================================
# HELPERS
# =============================================================================

def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _snapshot_data(payload: Any) -> Mapping[str, Any]:
    """Accept a full snapshot ({version, timestamp, data}) or a bare store mapping."""
    if not isinstance(payload, Mapping):
        raise ValidationError("Snapshot must be a JSON object")
    if "data" in payload and isinstance(payload.get("data"), Mapping):
        return payload["data"]
    return payload


def resolve_backup_dir(root: str, requested: Optional[str]) -> Path:
    """
    Resolve a requested backup directory inside the backup root.

    Raises:
        ValidationError: If the directory would escape the root
    """
    root_path = Path(root).resolve()
    target = (root_path / requested).resolve() if requested else root_path
    if target != root_path and root_path not in target.parents:
        raise ValidationError("Backup path must stay inside the backup root")
    return target


# =============================================================================
# EXPORT / IMPORT
# =============================================================================

async def export_snapshot(storage: DocumentStorage) -> dict[str, Any]:
    """Dump every store into one point-in-time snapshot."""
    data = await storage.export_all()
    total = sum(len(items) for items in data.values())
    logger.info("Exported %d records across %d stores", total, len(data))
    return {
        "version": SNAPSHOT_VERSION,
        "timestamp": _utc_timestamp(),
        "data": data,
    }


async def import_snapshot(
    storage: DocumentStorage,
    payload: Any,
    allowed: Optional[Iterable[str]] = None,
) -> ImportResult:
    """
    Restore a snapshot by upserting every record.

    All records are validated before anything is written, so a malformed
    snapshot leaves the store untouched.

    Args:
        storage: Target document storage
        payload: Full snapshot or bare {store: [records]} mapping
        allowed: Optional store name whitelist, as for /api/{store}

    Raises:
        ValidationError: If the snapshot or any record in it is malformed,
            or names a store outside the whitelist
    """
    data = _snapshot_data(payload)

    for store_name, items in data.items():
        validate_store_name(str(store_name), allowed)
        if not isinstance(items, list):
            raise ValidationError(f"Store '{store_name}' must map to a list of records")
        for item in items:
            try:
                record_id(item)
            except ValidationError as exc:
                raise ValidationError(f"Invalid record in '{store_name}': {exc.message}") from exc

    result = ImportResult()
    for store_name, items in data.items():
        for item in items:
            await storage.upsert(store_name, item)
        result.stores[store_name] = len(items)
        result.imported += len(items)

    logger.info("Imported %d records across %d stores", result.imported, len(result.stores))
    return result


# =============================================================================
# BACKUP
# =============================================================================

def _write_json(path: Path, snapshot: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, indent=2, ensure_ascii=False)


async def write_backup(
    storage: DocumentStorage,
    root: str,
    directory: Optional[str] = None,
    data: Optional[Mapping[str, Any]] = None,
) -> Path:
    """
    Write a snapshot file to disk.

    Args:
        storage: Source of a fresh snapshot when data is not given
        root: Backup root directory
        directory: Optional sub-directory of root
        data: Snapshot supplied by the caller (written as-is)

    Returns:
        Path of the written file
    """
    target_dir = resolve_backup_dir(root, directory)
    snapshot = data if data is not None else await export_snapshot(storage)

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    path = target_dir / f"{BACKUP_FILE_PREFIX}{stamp}.json"

    try:
        await asyncio.to_thread(_write_json, path, snapshot)
    except OSError as exc:
        raise StorageError(f"Could not write backup to {target_dir}: {exc}") from exc

    logger.info("Backup saved to %s", path)
    return path


# =============================================================================
# SEED
# =============================================================================

async def seed_default_accounts(storage: DocumentStorage) -> int:
    """Upsert the default administrator account(s). Returns the number written."""
    for account in DEFAULT_USER_ACCOUNTS:
        await storage.upsert(USER_ACCOUNTS_STORE, dict(account))
    logger.info("Seeded %d default user accounts", len(DEFAULT_USER_ACCOUNTS))
    return len(DEFAULT_USER_ACCOUNTS)
