"""
API Services Module.

Contains business logic services used by route handlers.
"""

from .snapshot_service import (
    ImportResult,
    SNAPSHOT_VERSION,
    export_snapshot,
    import_snapshot,
    seed_default_accounts,
    write_backup,
)


__all__ = [
    "ImportResult",
    "SNAPSHOT_VERSION",
    "export_snapshot",
    "import_snapshot",
    "seed_default_accounts",
    "write_backup",
]
