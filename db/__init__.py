"""
Database module.

Contains:
- db_config: Environment configuration and placeholder detection
- resolver: Connection URL resolution (IPv4 rewrite, TLS policy)
- connection_pool: Bounded psycopg2 pool
- bridge: The storage service object shared by all requests
- health: Configuration and connectivity checks
- storage/: Document storage over the single data table
"""

from db.bridge import DataBridge
from db.connection_pool import DatabasePool
from db.db_config import (
    check_database_url,
    get_database_url,
    get_pool_settings,
    is_production,
    validate_db_config,
)
from db.errors import (
    ConfigurationError,
    QueryError,
    StorageConnectionError,
    StorageError,
    ValidationError,
)
from db.resolver import ConnectionSettings, TLSPolicy, resolve_connection

__all__ = [
    # Config
    "check_database_url",
    "get_database_url",
    "get_pool_settings",
    "is_production",
    "validate_db_config",
    # Connection
    "ConnectionSettings",
    "TLSPolicy",
    "resolve_connection",
    "DatabasePool",
    "DataBridge",
    # Errors
    "StorageError",
    "ConfigurationError",
    "StorageConnectionError",
    "ValidationError",
    "QueryError",
]
