"""
Error Taxonomy
==============
Tagged exception kinds used to route retry / rotate / fatal decisions.

Errors are tagged at the transport boundary (``session.py``) wherever the
browser library exposes a structured error.  When it does not, the message
is matched against ``CONNECTIVITY_SIGNATURES``, the substring table the
scrapers have always used.  The table is kept verbatim on purpose; extend it
rather than "fixing" it, since retry behaviour depends on it.

Routing summary:

====================  ==================================================
Kind                  Effect
====================  ==================================================
CANCELLED             unwind, persist partial results, not a failure
CONNECTIVITY          rotate relay, retry the same work unit
TIMEOUT               count as error, continue with next unit
EXTRACTION            count as error, continue with next unit
AUTH_REQUIRED         pause for credentials (bounded), else fail
POOL_EXHAUSTED        fatal during initialization
UNKNOWN               fatal during initialization, counted otherwise
====================  ==================================================
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Tuple


class ErrorKind(str, Enum):
    CANCELLED = "cancelled"
    CONNECTIVITY = "connectivity"
    TIMEOUT = "timeout"
    EXTRACTION = "extraction"
    AUTH_REQUIRED = "auth_required"
    POOL_EXHAUSTED = "pool_exhausted"
    UNKNOWN = "unknown"


class LeadCrawlerError(Exception):
    """Base class for every error raised by this package."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class ConnectivityError(LeadCrawlerError):
    """Relay / transport failure (tunnel, refused, reset, DNS, ...)."""

    kind = ErrorKind.CONNECTIVITY


class OperationTimeout(LeadCrawlerError):
    """A single navigation or extraction exceeded its own bound."""

    kind = ErrorKind.TIMEOUT


class NavigationError(LeadCrawlerError):
    """Navigation failed for a reason that is not transport related
    (HTTP error status, aborted load, ...)."""

    kind = ErrorKind.EXTRACTION

    def __init__(self, message: str, url: str = "", status: int = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ExtractionError(LeadCrawlerError):
    """Site-specific extraction could not produce a record."""

    kind = ErrorKind.EXTRACTION


class AuthRequiredError(LeadCrawlerError):
    """The target demands interactive credentials."""

    kind = ErrorKind.AUTH_REQUIRED

    def __init__(self, message: str = "Authentication required", url: str = ""):
        super().__init__(message)
        self.url = url


class PoolExhausted(LeadCrawlerError):
    """No working relay remains and direct mode is not allowed."""

    kind = ErrorKind.POOL_EXHAUSTED


class JobCancelled(LeadCrawlerError):
    """Raised at a checkpoint once the job's cancel flag is set."""

    kind = ErrorKind.CANCELLED


class AuthTimeout(LeadCrawlerError):
    """No credentials arrived while the job was parked for authentication."""


class JobLimitReached(LeadCrawlerError):
    """JobManager refused a submission because all slots are taken."""


# ---------------------------------------------------------------------------
# Message-signature fallback
# ---------------------------------------------------------------------------

CONNECTIVITY_SIGNATURES: Tuple[str, ...] = (
    "ERR_TUNNEL_CONNECTION_FAILED",
    "TUNNEL_FAILED",
    "ERR_PROXY_CONNECTION_FAILED",
    "ERR_CONNECTION_CLOSED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_TIMED_OUT",
    "ERR_NAME_NOT_RESOLVED",
    "net::ERR_",
    "Requesting main frame too early",
    "Target closed",
    "Session closed",
    "Protocol error",
)

# Tunnel failures are the only connectivity errors that justify retrying
# session *creation* with a different relay.
TUNNEL_SIGNATURES: Tuple[str, ...] = (
    "ERR_TUNNEL_CONNECTION_FAILED",
    "TUNNEL_FAILED",
    "ERR_PROXY_CONNECTION_FAILED",
)


def matches_connectivity_signature(message: str) -> bool:
    message = message or ""
    return any(sig in message for sig in CONNECTIVITY_SIGNATURES)


def is_tunnel_failure(exc: BaseException) -> bool:
    message = str(exc) or ""
    if isinstance(exc, ConnectivityError):
        return True
    return any(sig in message for sig in TUNNEL_SIGNATURES)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception to an ``ErrorKind``.

    Cancellation always wins.  Tagged exceptions keep their own kind, except
    timeouts whose message carries a connectivity signature (a proxy that
    times out the tunnel is a relay problem, not a slow page).
    """
    if isinstance(exc, (JobCancelled, asyncio.CancelledError)):
        return ErrorKind.CANCELLED

    message = str(exc)

    if isinstance(exc, OperationTimeout):
        if matches_connectivity_signature(message):
            return ErrorKind.CONNECTIVITY
        return ErrorKind.TIMEOUT

    if isinstance(exc, LeadCrawlerError):
        return exc.kind

    if matches_connectivity_signature(message):
        return ErrorKind.CONNECTIVITY

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)) or "Timeout" in type(exc).__name__:
        return ErrorKind.TIMEOUT

    if isinstance(exc, (ConnectionError, OSError)):
        return ErrorKind.CONNECTIVITY

    return ErrorKind.UNKNOWN
