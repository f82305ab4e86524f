"""
API Routes Module.

Contains route handlers:
- system: health, export/import, backup, seed (/api/health, /api/system/*)
- documents: generic store CRUD (/api/{store})

system_router must be included before documents_router so that
/api/health and /api/system/* are not captured as store names.
"""

from .system import router as system_router
from .documents import router as documents_router

__all__ = [
    "system_router",
    "documents_router",
]
