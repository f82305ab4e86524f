"""
Connection Resolver
===================

Turns a Postgres connection URL into immutable ConnectionSettings:

- classifies the host (internal / literal IPv4 / external hostname)
- resolves external hostnames to an IPv4 address so the socket never tries an
  IPv6 route the runtime cannot reach
- derives the TLS policy, keeping the original hostname as the TLS server
  name when the transport address was rewritten

Resolution never raises. A URL that cannot be parsed falls back to encrypted,
unverified TLS and is handed to the driver as-is.

Trust note: even when the hostname resolved and the server name is carried
for the handshake, the certificate is NOT verified (sslmode=require). Managed
providers ship certificates the runtime has no CA bundle for; encryption
without verification is the accepted trade-off here.
"""

import logging
import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)

IPV4_PATTERN = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")

INTERNAL_SUFFIXES: tuple[str, ...] = (".internal", ".local")

# Hostname fragment -> provider label. Used for log output only.
KNOWN_PROVIDERS: tuple[tuple[str, str], ...] = (
    ("supabase", "Supabase"),
    ("neon.tech", "Neon"),
    ("render.com", "Render"),
    ("railway", "Railway"),
    ("rlwy.net", "Railway"),
    ("compute-1.amazonaws.com", "Heroku"),
    ("rds.amazonaws.com", "AWS RDS"),
    ("aivencloud.com", "Aiven"),
    ("ondigitalocean.com", "DigitalOcean"),
    ("cockroachlabs.cloud", "CockroachDB"),
    ("tsdb.cloud.timescale.com", "Timescale"),
    ("postgres.database.azure.com", "Azure"),
    ("cloudsql", "Google Cloud SQL"),
)


class HostKind(str, Enum):
    INTERNAL = "internal"
    IPV4 = "ipv4"
    HOSTNAME = "hostname"
    UNKNOWN = "unknown"


class TLSPolicy(str, Enum):
    NONE = "none"
    UNVERIFIED = "required-but-unverified"
    SERVER_NAME = "required-with-server-name"


@dataclass(frozen=True)
class ConnectionSettings:
    """
    Resolved, immutable connection target.

    dsn is always the URL exactly as configured. The socket address and the
    TLS identity are kept apart: transport_address is what the driver
    connects to, tls_server_name is what it announces during the handshake.
    """

    dsn: str
    tls_policy: TLSPolicy
    host_kind: HostKind = HostKind.UNKNOWN
    original_host: Optional[str] = None
    transport_address: Optional[str] = None
    tls_server_name: Optional[str] = None
    provider: Optional[str] = None
    url_sslmode: Optional[str] = None

    def connect_kwargs(self) -> dict[str, Any]:
        """
        libpq keyword overrides applied on top of dsn.

        psycopg2 merges these into the URL, so the configured string itself
        never needs rewriting.
        """
        kwargs: dict[str, Any] = {}
        if self.tls_policy == TLSPolicy.NONE:
            if self.url_sslmode is None:
                kwargs["sslmode"] = "disable"
        else:
            kwargs["sslmode"] = "require"

        if self.transport_address:
            kwargs["hostaddr"] = self.transport_address
            if self.tls_server_name:
                kwargs["host"] = self.tls_server_name
        return kwargs

    def describe(self) -> dict[str, Any]:
        """Loggable summary without credentials."""
        return {
            "host": self.original_host,
            "host_kind": self.host_kind.value,
            "transport_address": self.transport_address,
            "tls": self.tls_policy.value,
            "provider": self.provider or "unknown",
        }


# =============================================================================
# HELPERS
# =============================================================================

def classify_host(hostname: str) -> HostKind:
    """Classify a hostname as internal, literal IPv4 or external."""
    host = hostname.lower()
    if host == "localhost" or host.endswith(INTERNAL_SUFFIXES):
        return HostKind.INTERNAL
    if IPV4_PATTERN.match(host):
        return HostKind.IPV4
    return HostKind.HOSTNAME


def identify_provider(hostname: Optional[str]) -> Optional[str]:
    if not hostname:
        return None
    host = hostname.lower()
    for fragment, label in KNOWN_PROVIDERS:
        if fragment in host:
            return label
    return None


def lookup_ipv4(hostname: str) -> str:
    """
    Resolve a hostname to its first IPv4 address.

    Raises:
        OSError: If the name does not resolve (socket.gaierror) or has no A record
    """
    infos = socket.getaddrinfo(hostname, None, socket.AF_INET, socket.SOCK_STREAM)
    for family, _type, _proto, _canon, sockaddr in infos:
        if family == socket.AF_INET:
            return sockaddr[0]
    raise OSError(f"No IPv4 address for {hostname}")


def _url_sslmode(query: str) -> Optional[str]:
    values = parse_qs(query).get("sslmode")
    return values[-1] if values else None


# =============================================================================
# PUBLIC API
# =============================================================================

def resolve_connection(
    url: str,
    *,
    production: bool = False,
    lookup: Callable[[str], str] = lookup_ipv4,
) -> ConnectionSettings:
    """
    Build ConnectionSettings for a connection URL.

    Args:
        url: Postgres connection URL
        production: Whether the process runs in production (forces TLS)
        lookup: IPv4 resolver, injectable for tests

    Returns:
        ConnectionSettings; never raises for malformed input
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        sslmode = _url_sslmode(parts.query)
    except ValueError as exc:
        logger.error("Could not parse DATABASE_URL (%s); using encrypted unverified TLS", exc)
        return ConnectionSettings(dsn=url, tls_policy=TLSPolicy.UNVERIFIED)

    if not hostname:
        logger.error("DATABASE_URL has no hostname; using encrypted unverified TLS")
        return ConnectionSettings(dsn=url, tls_policy=TLSPolicy.UNVERIFIED, url_sslmode=sslmode)

    provider = identify_provider(hostname)
    kind = classify_host(hostname)

    if kind in (HostKind.INTERNAL, HostKind.IPV4):
        wants_tls = production or sslmode == "require"
        settings = ConnectionSettings(
            dsn=url,
            tls_policy=TLSPolicy.UNVERIFIED if wants_tls else TLSPolicy.NONE,
            host_kind=kind,
            original_host=hostname,
            provider=provider,
            url_sslmode=sslmode,
        )
        logger.info("Database target %s", settings.describe())
        return settings

    try:
        address = lookup(hostname)
    except OSError as exc:
        logger.warning("DNS resolution failed for %s, using original hostname: %s", hostname, exc)
        settings = ConnectionSettings(
            dsn=url,
            tls_policy=TLSPolicy.UNVERIFIED,
            host_kind=kind,
            original_host=hostname,
            provider=provider,
            url_sslmode=sslmode,
        )
    else:
        settings = ConnectionSettings(
            dsn=url,
            tls_policy=TLSPolicy.SERVER_NAME,
            host_kind=kind,
            original_host=hostname,
            transport_address=address,
            tls_server_name=hostname,
            provider=provider,
            url_sslmode=sslmode,
        )

    logger.info("Database target %s", settings.describe())
    return settings
