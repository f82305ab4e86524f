"""
Database Configuration Module
=============================

Centralized configuration for the data bridge, read from the environment.

Environment Variables:
    DATABASE_URL: Postgres connection URL (required for data operations)
    ENVIRONMENT: 'production' forces TLS for internal/IP hosts (default: development)

    Pool tuning:
        DB_POOL_MAX_CONNECTIONS (10), DB_POOL_IDLE_TIMEOUT (30 s),
        DB_CONNECTION_TIMEOUT (10 s), DB_STATEMENT_TIMEOUT_MS (30000)

    API:
        ALLOWED_STORES: optional comma separated whitelist of store names
        BACKUP_ROOT: directory server-side backups are written under (default: backups)

Usage:
    from db.db_config import get_database_url, validate_db_config

    is_valid, error = validate_db_config()
    if not is_valid:
        logger.warning(error)
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv

from db.errors import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

# =============================================================================
# PLACEHOLDER DETECTION
# =============================================================================

# Template fragments left behind when a connection string was copied from a
# provider dashboard or deploy template without being filled in.
PLACEHOLDER_MARKERS: tuple[str, ...] = (
    "[YOUR-PASSWORD]",
    "[YOUR_PASSWORD]",
    "YOUR-PASSWORD",
    "YOUR_PASSWORD",
    "<password>",
    "<PASSWORD>",
    "${",
    "{{",
)


def is_placeholder_url(url: str) -> bool:
    """Check whether a connection string still contains a template marker."""
    return any(marker in url for marker in PLACEHOLDER_MARKERS)


# =============================================================================
# ENVIRONMENT
# =============================================================================

def get_database_url() -> Optional[str]:
    """Return DATABASE_URL stripped of surrounding whitespace, or None if unset/blank."""
    url = os.getenv("DATABASE_URL")
    if url is None:
        return None
    url = url.strip()
    return url or None


def get_environment() -> str:
    return os.getenv("ENVIRONMENT", "development").strip().lower() or "development"


def is_production() -> bool:
    return get_environment() == "production"


# =============================================================================
# POOL CONFIGURATION
# =============================================================================

def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", name, raw, default)
        return default


def get_pool_settings() -> dict[str, int]:
    """
    Get pool sizing and timeouts.

    Returns:
        Dict with max_connections, idle_timeout, connect_timeout (seconds)
        and statement_timeout_ms
    """
    return {
        "max_connections": _int_env("DB_POOL_MAX_CONNECTIONS", 10),
        "idle_timeout": _int_env("DB_POOL_IDLE_TIMEOUT", 30),
        "connect_timeout": _int_env("DB_CONNECTION_TIMEOUT", 10),
        "statement_timeout_ms": _int_env("DB_STATEMENT_TIMEOUT_MS", 30000),
    }


# =============================================================================
# API CONFIGURATION
# =============================================================================

def get_allowed_stores() -> Optional[frozenset[str]]:
    """
    Get the store name whitelist.

    Returns:
        frozenset of allowed names, or None when any store name is accepted
    """
    raw = os.getenv("ALLOWED_STORES", "")
    names = frozenset(name.strip() for name in raw.split(",") if name.strip())
    return names or None


def get_backup_root() -> str:
    return os.getenv("BACKUP_ROOT", "backups")


# =============================================================================
# VALIDATION
# =============================================================================

def check_database_url(url: Optional[str]) -> str:
    """
    Ensure a connection string is usable.

    Returns:
        The connection string

    Raises:
        ConfigurationError: If it is missing or still a template placeholder
    """
    if not url:
        raise ConfigurationError(
            "DATABASE_URL is not set; data operations are unavailable",
            reason=ConfigurationError.MISSING,
        )
    if is_placeholder_url(url):
        raise ConfigurationError(
            "DATABASE_URL contains an unsubstituted placeholder value",
            reason=ConfigurationError.PLACEHOLDER,
        )
    return url


def validate_db_config() -> tuple[bool, str]:
    """
    Validate that the database configuration is present and filled in.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        check_database_url(get_database_url())
    except ConfigurationError as exc:
        return False, exc.message
    return True, ""
