"""
Shared Pydantic models for the data bridge API.

Request bodies for store writes are free-form JSON documents and are not
modelled here; only the envelopes the server itself produces are.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# WRITE RESPONSES
# =============================================================================

class WriteResponse(BaseModel):
    success: bool = True
    id: Any


class ImportResponse(BaseModel):
    success: bool = True
    imported: int
    stores: dict[str, int] = Field(default_factory=dict)


class BackupRequest(BaseModel):
    path: Optional[str] = Field(None, description="Directory under BACKUP_ROOT; defaults to the root itself")
    data: Optional[dict[str, Any]] = Field(None, description="Snapshot to write; a fresh export is used when omitted")


class BackupResponse(BaseModel):
    success: bool = True
    path: str


class SeedResponse(BaseModel):
    success: bool = True
    message: str
    seeded: int


# =============================================================================
# READ RESPONSES
# =============================================================================

class SnapshotResponse(BaseModel):
    version: str
    timestamp: str
    data: dict[str, list[Any]]


class HealthResponse(BaseModel):
    status: str
    version: str
    database: dict[str, Any]
    environment: str


class HealthErrorResponse(BaseModel):
    status: str = "error"
    error: str
    reason: str
    hint: Optional[str] = None
    hint_kind: Optional[str] = None
    database: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: str
    message: str
