"""
Storage error taxonomy.

Every failure raised by the data bridge derives from StorageError and knows
how it is reported over HTTP (kind + status code). Route handlers never
format these themselves; the exception handler in main.py does.
"""

from typing import Any, Optional


class StorageError(Exception):
    """Base class for all data bridge failures."""

    kind = "StorageError"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class ConfigurationError(StorageError):
    """DATABASE_URL is missing or still holds a template placeholder."""

    kind = "ConfigurationError"
    status_code = 503

    MISSING = "missing"
    PLACEHOLDER = "placeholder"

    def __init__(self, message: str, reason: str = MISSING) -> None:
        super().__init__(message)
        self.reason = reason


class StorageConnectionError(StorageError):
    """DNS, network or timeout failure, or the pool is not ready yet."""

    kind = "ConnectionError"
    status_code = 503


class ValidationError(StorageError):
    """The caller sent a payload the store cannot accept."""

    kind = "ValidationError"
    status_code = 400


class QueryError(StorageError):
    """The database engine rejected a statement."""

    kind = "QueryError"
    status_code = 500

    def __init__(self, message: str, pgcode: Optional[str] = None) -> None:
        super().__init__(message)
        self.pgcode = pgcode
