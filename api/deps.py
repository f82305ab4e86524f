"""
FastAPI dependencies.

The DataBridge is built once in main.py's lifespan and stored on app.state;
handlers receive it (or its DocumentStorage) through these functions.
"""

from fastapi import Depends, Request

from db.bridge import DataBridge
from db.db_config import get_allowed_stores
from db.storage import DocumentStorage, validate_store_name


def get_bridge(request: Request) -> DataBridge:
    return request.app.state.bridge


def get_storage(bridge: DataBridge = Depends(get_bridge)) -> DocumentStorage:
    return bridge.documents


def valid_store(store: str) -> str:
    """Path parameter check for /api/{store} routes."""
    return validate_store_name(store, get_allowed_stores())
