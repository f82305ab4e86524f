"""
Health check for the data bridge.

check_health() re-validates configuration and round-trips SELECT 1 on every
call. Failures are classified so an operator can tell a placeholder
connection string from a missing one, and a network problem from a
credentials problem.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from db.bridge import DataBridge
from db.db_config import check_database_url
from db.errors import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

MISSING_CONFIGURATION = "missing_configuration"
PLACEHOLDER_CONFIGURATION = "placeholder_configuration"
CONNECTIVITY_FAILURE = "connectivity_failure"

HINT_NETWORK = "network"
HINT_CREDENTIALS = "credentials"
HINT_UNKNOWN = "unknown"

# Checked before network markers: an auth failure proves the network works
CREDENTIAL_MARKERS: tuple[str, ...] = (
    "password authentication failed",
    "authentication failed",
    "no password supplied",
    "pg_hba.conf",
    "permission denied",
    "does not exist",
)

NETWORK_MARKERS: tuple[str, ...] = (
    "network is unreachable",
    "enetunreach",
    "could not translate host name",
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "no route to host",
    "connection refused",
    "timeout expired",
    "timed out",
    "could not connect to server",
    "connection to server",
    "server closed the connection",
)

HINT_MESSAGES = {
    HINT_NETWORK: "Database host is unreachable. Check the hostname, port, firewall and IPv4 reachability.",
    HINT_CREDENTIALS: "Database rejected the login. Check the user, password and database name in DATABASE_URL.",
    HINT_UNKNOWN: "Check the server logs for the underlying database error.",
}


@dataclass
class HealthReport:
    ok: bool
    kind: Optional[str] = None
    reason: Optional[str] = None
    hint: Optional[str] = None
    hint_kind: Optional[str] = None
    database: dict[str, Any] = field(default_factory=dict)


def classify_connection_error(message: str) -> str:
    """Guess whether a connection failure is a network or a credentials problem."""
    text = message.lower()
    if any(marker in text for marker in CREDENTIAL_MARKERS):
        return HINT_CREDENTIALS
    if any(marker in text for marker in NETWORK_MARKERS):
        return HINT_NETWORK
    return HINT_UNKNOWN


def _failure(kind: str, reason: str, hint_kind: str, hint: str, bridge: DataBridge) -> HealthReport:
    return HealthReport(
        ok=False,
        kind=kind,
        reason=reason,
        hint=hint,
        hint_kind=hint_kind,
        database=bridge.describe(),
    )


def check_health(bridge: DataBridge) -> HealthReport:
    """
    Check configuration and connectivity. Blocking.

    Returns:
        HealthReport; ok=True only when a SELECT 1 round trip succeeded
    """
    try:
        check_database_url(bridge.database_url)
    except ConfigurationError as exc:
        if exc.reason == ConfigurationError.PLACEHOLDER:
            return _failure(
                PLACEHOLDER_CONFIGURATION,
                exc.message,
                HINT_UNKNOWN,
                "Replace the template value in DATABASE_URL with the real password.",
                bridge,
            )
        return _failure(
            MISSING_CONFIGURATION,
            exc.message,
            HINT_UNKNOWN,
            "Set DATABASE_URL to a Postgres connection URL.",
            bridge,
        )

    if bridge.pool is None:
        reason = bridge.startup_error or "Database pool not initialized"
        hint_kind = classify_connection_error(reason)
        return _failure(CONNECTIVITY_FAILURE, reason, hint_kind, HINT_MESSAGES[hint_kind], bridge)

    try:
        bridge.pool.ping()
    except StorageError as exc:
        hint_kind = classify_connection_error(exc.message)
        logger.warning("Health check failed (%s): %s", hint_kind, exc.message)
        return _failure(CONNECTIVITY_FAILURE, exc.message, hint_kind, HINT_MESSAGES[hint_kind], bridge)

    return HealthReport(ok=True, database={"status": "connected", **bridge.describe()})
