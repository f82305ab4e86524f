"""
Database storage submodule.

Contains the document storage used by every API route.
"""

from db.storage.documents import CollectionRepository, DocumentStorage, validate_store_name

__all__ = [
    "CollectionRepository",
    "DocumentStorage",
    "validate_store_name",
]
