"""
System Routes Module.

Handles bridge-wide endpoints:
- GET /api/health: Configuration + connectivity check
- GET /api/system/export: Snapshot of every store
- POST /api/system/import: Restore a snapshot by replaying upserts
- POST /api/system/backup: Write a snapshot file on the server
- POST /api/system/seed: Restore the default administrator account

These routes must be registered before the generic /api/{store} routes.
"""

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from api import APP_VERSION
from api.deps import get_bridge, get_storage
from api.models import (
    BackupRequest,
    BackupResponse,
    HealthErrorResponse,
    HealthResponse,
    ImportResponse,
    SeedResponse,
    SnapshotResponse,
)
from api.services import export_snapshot, import_snapshot, seed_default_accounts, write_backup
from db.bridge import DataBridge
from db.db_config import get_allowed_stores, get_backup_root, get_environment
from db.health import check_health
from db.storage import DocumentStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["system"])


# =============================================================================
# HEALTH
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthErrorResponse}},
)
async def health(bridge: DataBridge = Depends(get_bridge)) -> Any:
    """Re-validate configuration and round-trip the database."""
    report = await asyncio.to_thread(check_health, bridge)

    if not report.ok:
        body = HealthErrorResponse(
            error=report.kind or "connectivity_failure",
            reason=report.reason or "unknown",
            hint=report.hint,
            hint_kind=report.hint_kind,
            database=report.database,
        )
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body.model_dump())

    return HealthResponse(
        status="ok",
        version=APP_VERSION,
        database=report.database,
        environment=get_environment(),
    )


# =============================================================================
# EXPORT / IMPORT
# =============================================================================

@router.get("/system/export", response_model=SnapshotResponse)
async def export_all(storage: DocumentStorage = Depends(get_storage)) -> dict[str, Any]:
    return await export_snapshot(storage)


@router.post("/system/import", response_model=ImportResponse)
async def import_all(
    payload: Any = Body(...),
    storage: DocumentStorage = Depends(get_storage),
) -> ImportResponse:
    """Accepts a full export document or a bare {store: [records]} mapping."""
    result = await import_snapshot(storage, payload, allowed=get_allowed_stores())
    return ImportResponse(imported=result.imported, stores=result.stores)


# =============================================================================
# BACKUP / SEED
# =============================================================================

@router.post("/system/backup", response_model=BackupResponse)
async def backup(
    request: Optional[BackupRequest] = Body(None),
    storage: DocumentStorage = Depends(get_storage),
) -> BackupResponse:
    request = request or BackupRequest()
    path = await write_backup(
        storage,
        get_backup_root(),
        directory=request.path,
        data=request.data,
    )
    return BackupResponse(path=str(path))


@router.post("/system/seed", response_model=SeedResponse)
async def seed(storage: DocumentStorage = Depends(get_storage)) -> SeedResponse:
    logger.info("Manual seed requested")
    count = await seed_default_accounts(storage)
    return SeedResponse(message="Default users seeded.", seeded=count)
