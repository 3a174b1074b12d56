"""
Exceptions raised at the Linear API boundary.

Every failure coming out of LinearClient is one of three classes, and each
class carries a closed ``kind`` enum so callers can match exhaustively
instead of inspecting messages:

  LinearApiError      GraphQL / HTTP-level rejections
  LinearNetworkError  transport failures (DNS, refused connection, timeout)
  LinearConfigError   missing or invalid client configuration
"""
from enum import Enum
from typing import Any, Optional


# ── Kinds ─────────────────────────────────────────────────────────────────────

class LinearApiErrorKind(str, Enum):
    GRAPHQL_ERROR = "GRAPHQL_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"


class LinearNetworkErrorKind(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    DNS_FAILURE = "DNS_FAILURE"


# ── Exceptions ────────────────────────────────────────────────────────────────

class LinearError(RuntimeError):
    """Base class for everything LinearClient raises."""


class LinearApiError(LinearError):
    """Raised when Linear answers but rejects the request."""

    def __init__(
        self,
        message: str,
        kind: LinearApiErrorKind = LinearApiErrorKind.GRAPHQL_ERROR,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        raw: Any = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.retry_after = retry_after  # seconds, from the Retry-After header
        self.raw = raw


class LinearNetworkError(LinearError):
    """Raised when Linear cannot be reached at all."""

    def __init__(
        self,
        message: str,
        kind: LinearNetworkErrorKind = LinearNetworkErrorKind.NETWORK_ERROR,
    ):
        super().__init__(message)
        self.kind = kind


class LinearConfigError(LinearError):
    """Raised when the client is missing its API key or endpoint."""
