"""
Document Routes Module.

Generic CRUD over any store (collection) name:
- GET /api/{store}: List records, most recently updated first
- POST /api/{store}: Upsert a record (body must carry an id)
- DELETE /api/{store}/{item_id}: Delete a record by id (idempotent)
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status

from api.deps import get_storage, valid_store
from api.models import ErrorResponse, WriteResponse
from db.errors import ValidationError
from db.storage import DocumentStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["documents"])

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.get("/{store}", response_model=list[Any], responses=ERROR_RESPONSES)
async def list_records(
    store: str = Depends(valid_store),
    storage: DocumentStorage = Depends(get_storage),
) -> list[Any]:
    return await storage.collection(store).list_all()


@router.post(
    "/{store}",
    response_model=WriteResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def put_record(
    request: Request,
    store: str = Depends(valid_store),
    storage: DocumentStorage = Depends(get_storage),
) -> WriteResponse:
    """Insert or replace the posted document; the store never inspects its shape."""
    try:
        record = await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc

    item_id = await storage.collection(store).put(record)
    return WriteResponse(id=item_id)


@router.delete("/{store}/{item_id}", response_model=WriteResponse, responses=ERROR_RESPONSES)
async def delete_record(
    item_id: str,
    store: str = Depends(valid_store),
    storage: DocumentStorage = Depends(get_storage),
) -> WriteResponse:
    await storage.collection(store).delete(item_id)
    return WriteResponse(id=item_id)
