"""
Map exceptions raised while fetching from Linear to stable sync error codes.

The HTTP layer and UI key their messages off SyncErrorCode, so this mapping
is the single source of truth for the taxonomy.
"""
import asyncio
from dataclasses import dataclass

from backlog.linear.errors import (
    LinearApiError,
    LinearApiErrorKind,
    LinearConfigError,
    LinearNetworkError,
)
from backlog.models.sync import SyncErrorCode

MISSING_PROJECT_MESSAGE = "LINEAR_PROJECT_ID not configured - cannot sync"
UNKNOWN_ERROR_MESSAGE = "Unknown sync error"
TIMEOUT_MESSAGE = "Sync operation timed out"


@dataclass(frozen=True)
class ClassifiedError:
    code: SyncErrorCode
    message: str  # safe for API responses, no tracebacks


_API_KIND_CODES = {
    LinearApiErrorKind.AUTHENTICATION_ERROR: (
        SyncErrorCode.AUTH_FAILED, "Linear API authentication failed"
    ),
    LinearApiErrorKind.PERMISSION_ERROR: (
        SyncErrorCode.AUTH_FAILED, "Linear API authentication failed"
    ),
    LinearApiErrorKind.RATE_LIMITED: (
        SyncErrorCode.RATE_LIMITED, "Linear API rate limit exceeded"
    ),
    LinearApiErrorKind.NOT_FOUND: (
        SyncErrorCode.CONFIG_ERROR,
        "Linear project not found - check LINEAR_PROJECT_ID configuration",
    ),
    LinearApiErrorKind.GRAPHQL_ERROR: (SyncErrorCode.API_UNAVAILABLE, None),
}


def _message_of(exc: BaseException) -> str:
    return str(exc) or UNKNOWN_ERROR_MESSAGE


def classify_sync_error(exc: BaseException) -> ClassifiedError:
    """
    Classify an exception from the fetch phase. Never raises.

    Args:
        exc: The exception caught by the sync engine.

    Returns:
        ClassifiedError with a SyncErrorCode and a user-safe message.
    """
    if isinstance(exc, LinearConfigError):
        return ClassifiedError(SyncErrorCode.CONFIG_ERROR, _message_of(exc))

    if isinstance(exc, LinearNetworkError):
        return ClassifiedError(SyncErrorCode.API_UNAVAILABLE, _message_of(exc))

    if isinstance(exc, LinearApiError):
        code, message = _API_KIND_CODES.get(
            exc.kind, (SyncErrorCode.API_UNAVAILABLE, None)
        )
        return ClassifiedError(code, message or _message_of(exc))

    # Deadlines imposed outside the Linear client (asyncio.wait_for etc.)
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ClassifiedError(SyncErrorCode.TIMEOUT, TIMEOUT_MESSAGE)

    return ClassifiedError(SyncErrorCode.UNKNOWN_ERROR, _message_of(exc))
