"""
Async client for Linear's GraphQL API.

Only the calls the sync engine needs live here. Every failure is re-raised as
one of the typed errors in backlog.linear.errors so the engine can classify
it without looking at messages:

  httpx timeout                 → LinearNetworkError(TIMEOUT)
  name resolution failure       → LinearNetworkError(DNS_FAILURE)
  other httpx transport errors  → LinearNetworkError(NETWORK_ERROR)
  HTTP 401 / 403                → LinearApiError(AUTHENTICATION_ERROR / PERMISSION_ERROR)
  HTTP 429, RATELIMITED         → LinearApiError(RATE_LIMITED)
  other GraphQL / HTTP errors   → LinearApiError(GRAPHQL_ERROR or NOT_FOUND)

Two retry layers wrap every request. The outer one retries transient
failures (network errors, HTTP 5xx) with jittered backoff capped at 8 s. The
inner one retries rate-limited responses, honouring Retry-After, capped at
30 s. Before each request the client also waits out Linear's leaky bucket
when the last seen rate-limit headers put the remaining budget under 10%.
"""
import asyncio
import logging
import math
import random
import socket
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from backlog.config import get_settings
from backlog.linear.errors import (
    LinearApiError,
    LinearApiErrorKind,
    LinearConfigError,
    LinearNetworkError,
    LinearNetworkErrorKind,
)

logger = logging.getLogger(__name__)

# Every relation the transformer reads is requested up front so one page is
# exactly one HTTP round-trip.
ISSUES_QUERY = """
query ProjectIssues($projectId: ID!, $first: Int!, $after: String) {
  issues(
    filter: { project: { id: { eq: $projectId } } }
    first: $first
    after: $after
  ) {
    nodes {
      id
      identifier
      title
      description
      priority
      sortOrder
      prioritySortOrder
      url
      createdAt
      updatedAt
      completedAt
      dueDate
      state { id name type }
      assignee { id name email }
      project { id name }
      team { id name }
      labels { nodes { id name color } }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

# GraphQL `extensions.code` values Linear uses for the failures we care about.
_EXTENSION_CODES = {
    "RATELIMITED": LinearApiErrorKind.RATE_LIMITED,
    "AUTHENTICATION_ERROR": LinearApiErrorKind.AUTHENTICATION_ERROR,
    "FORBIDDEN": LinearApiErrorKind.PERMISSION_ERROR,
    "ENTITY_NOT_FOUND": LinearApiErrorKind.NOT_FOUND,
}

_RATE_LIMIT_HEADER_PREFIX = "x-ratelimit-"

# Rate-limit dimensions reported in headers as x-ratelimit-<dim>-limit / -remaining.
_RATE_LIMIT_DIMENSIONS = ("requests", "complexity", "endpoint-requests")

# Linear's buckets refill linearly over an hour.
_SECONDS_PER_HOUR = 3600

# Substrings of resolver errors across platforms (glibc, macOS, Windows).
_DNS_FAILURE_SIGNALS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


@dataclass
class PageInfo:
    has_next_page: bool = False
    end_cursor: Optional[str] = None


@dataclass
class IssuePage:
    """One page of raw issue nodes plus the cursor to the next page."""
    records: List[Dict[str, Any]] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)


class LinearClient:
    """
    Thin async wrapper over Linear's GraphQL endpoint.

    Credentials default to the LINEAR_API_KEY / LINEAR_API_URL settings.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
        transient_max_delay: float = 8.0,
        safety_threshold: float = 0.10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Linear personal API key. Defaults to settings.
            api_url: GraphQL endpoint. Defaults to settings.
            timeout: Per-request timeout in seconds. Defaults to settings.
            max_retries: Retries per layer (rate-limited and transient).
            base_delay: First backoff delay in seconds.
            multiplier: Backoff growth per retry.
            max_delay: Upper bound for a rate-limit backoff delay.
            transient_max_delay: Upper bound for a transient-failure backoff delay.
            safety_threshold: Fraction of a rate-limit bucket below which
                              requests are delayed until it refills.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.linear_api_key
        self._api_url = api_url or settings.linear_api_url
        self._timeout = timeout if timeout is not None else settings.linear_timeout_seconds
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._multiplier = multiplier
        self._max_delay = max_delay
        self._transient_max_delay = transient_max_delay
        self._safety_threshold = safety_threshold
        self._transport = transport
        self.last_rate_limit: Dict[str, int] = {}
        self._rate_limit_seen_at: Optional[float] = None

    async def fetch_page(
        self,
        project_id: str,
        *,
        page_size: int = 50,
        after: Optional[str] = None,
    ) -> IssuePage:
        """
        Fetch one page of issues belonging to a Linear project.

        Args:
            project_id: Linear project UUID.
            page_size: Number of issues to request.
            after: Cursor returned as end_cursor by the previous page.

        Returns:
            IssuePage with raw issue node dicts.

        Raises:
            LinearConfigError, LinearNetworkError, LinearApiError.
        """
        data = await self._query(
            ISSUES_QUERY,
            {"projectId": project_id, "first": page_size, "after": after},
        )
        connection = data.get("issues") or {}
        page_info = connection.get("pageInfo") or {}
        return IssuePage(
            records=list(connection.get("nodes") or []),
            page_info=PageInfo(
                has_next_page=bool(page_info.get("hasNextPage", False)),
                end_cursor=page_info.get("endCursor"),
            ),
        )

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """POST a GraphQL query, retrying transient failures with jittered backoff."""
        if not self._api_key:
            raise LinearConfigError("LINEAR_API_KEY is not configured")

        attempt = 0
        while True:
            try:
                return await self._query_rate_limited(query, variables)
            except (LinearNetworkError, LinearApiError) as exc:
                if not _is_transient(exc):
                    raise
                if attempt >= self._max_retries:
                    logger.error(
                        "Linear request failed after %d transient retries: %s",
                        self._max_retries, exc,
                    )
                    raise
                delay = self._transient_delay(attempt)
                logger.warning(
                    "Transient Linear error, retrying in %.1fs (attempt %d/%d): %s",
                    delay, attempt + 1, self._max_retries, exc,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _query_rate_limited(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """POST a GraphQL query, backing off while Linear reports rate limiting."""
        attempt = 0
        while True:
            await self._throttle()
            try:
                return await self._post(query, variables)
            except LinearApiError as exc:
                if exc.kind is not LinearApiErrorKind.RATE_LIMITED:
                    raise
                if attempt >= self._max_retries:
                    raise
                delay = self._retry_delay(attempt, exc.retry_after)
                logger.warning(
                    "Linear rate limit hit, retrying in %.1fs (attempt %d/%d)",
                    delay, attempt + 1, self._max_retries,
                )
                await asyncio.sleep(delay)
                attempt += 1

    def _retry_delay(self, attempt: int, retry_after: Optional[float]) -> float:
        if retry_after is not None:
            return min(max(retry_after, 0.0), self._max_delay)
        return min(self._base_delay * (self._multiplier ** attempt), self._max_delay)

    def _transient_delay(self, attempt: int) -> float:
        delay = self._base_delay * (self._multiplier ** attempt)
        jitter = random.random() * delay * 0.1
        return min(delay + jitter, self._transient_max_delay)

    async def _throttle(self) -> None:
        """Sleep until the emptiest rate-limit bucket is back above the safety threshold."""
        wait = self._throttle_delay()
        if wait <= 0:
            return
        logger.warning("Approaching Linear rate limit, throttling for %.1fs", wait)
        await asyncio.sleep(wait)

    def _throttle_delay(self) -> float:
        if not self.last_rate_limit or self._rate_limit_seen_at is None:
            return 0.0
        elapsed = max(0.0, time.monotonic() - self._rate_limit_seen_at)

        longest = 0.0
        for dimension in _RATE_LIMIT_DIMENSIONS:
            limit = self.last_rate_limit.get(f"{dimension}-limit")
            remaining = self.last_rate_limit.get(f"{dimension}-remaining")
            if limit is None or remaining is None or limit <= 0:
                continue
            threshold = math.ceil(limit * self._safety_threshold)
            refill_rate = limit / _SECONDS_PER_HOUR  # tokens per second
            estimated = min(remaining + math.floor(elapsed * refill_rate), limit)
            if estimated >= threshold:
                continue
            longest = max(longest, (threshold - estimated) / refill_rate)
        return longest

    async def _post(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": self._api_key,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as http:
                response = await http.post(
                    self._api_url,
                    json={"query": query, "variables": variables},
                    headers=headers,
                )
        except httpx.TimeoutException as exc:
            raise LinearNetworkError(
                f"Linear API request timed out: {exc}",
                LinearNetworkErrorKind.TIMEOUT,
            ) from exc
        except httpx.ConnectError as exc:
            kind = (
                LinearNetworkErrorKind.DNS_FAILURE
                if _is_dns_failure(exc)
                else LinearNetworkErrorKind.NETWORK_ERROR
            )
            raise LinearNetworkError(f"Linear API unreachable: {exc}", kind) from exc
        except httpx.RequestError as exc:
            raise LinearNetworkError(f"Linear API unreachable: {exc}") from exc

        self._record_rate_limit(response.headers)

        status = response.status_code
        if status == 401:
            raise LinearApiError(
                "Linear API authentication failed",
                LinearApiErrorKind.AUTHENTICATION_ERROR,
                status_code=status,
            )
        if status == 403:
            raise LinearApiError(
                "Linear API permission denied",
                LinearApiErrorKind.PERMISSION_ERROR,
                status_code=status,
            )
        if status == 429:
            raise LinearApiError(
                "Linear API rate limit exceeded",
                LinearApiErrorKind.RATE_LIMITED,
                status_code=status,
                retry_after=_parse_retry_after(response.headers),
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise LinearApiError(
                f"Linear API returned a non-JSON response (HTTP {status})",
                status_code=status,
            ) from exc

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            raise _graphql_error(errors, response)
        if status >= 400:
            raise LinearApiError(f"Linear API returned HTTP {status}", status_code=status)

        return body.get("data") or {}

    def _record_rate_limit(self, headers: httpx.Headers) -> None:
        info: Dict[str, int] = {}
        for name, value in headers.items():
            if not name.lower().startswith(_RATE_LIMIT_HEADER_PREFIX):
                continue
            try:
                info[name.lower()[len(_RATE_LIMIT_HEADER_PREFIX):]] = int(value)
            except ValueError:
                continue
        if info:
            self.last_rate_limit = info
            self._rate_limit_seen_at = time.monotonic()
            logger.debug("Linear rate limit: %s", info)


def _is_transient(exc: Exception) -> bool:
    """Network failures and 5xx answers. Rate limiting has its own retry layer."""
    if isinstance(exc, LinearNetworkError):
        return True
    if isinstance(exc, LinearApiError):
        if exc.kind is LinearApiErrorKind.RATE_LIMITED:
            return False
        return exc.status_code is not None and exc.status_code >= 500
    return False


def _is_dns_failure(exc: httpx.ConnectError) -> bool:
    seen = set()
    cause: Optional[BaseException] = exc
    while cause is not None and id(cause) not in seen:
        if isinstance(cause, socket.gaierror):
            return True
        seen.add(id(cause))
        cause = cause.__cause__ or cause.__context__
    message = str(exc).lower()
    return any(signal in message for signal in _DNS_FAILURE_SIGNALS)


def _parse_retry_after(headers: httpx.Headers) -> Optional[float]:
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None  # HTTP-date form; fall back to exponential backoff


def _graphql_error(errors: List[Dict[str, Any]], response: httpx.Response) -> LinearApiError:
    """Build a LinearApiError from the first GraphQL error in a response."""
    first = errors[0] if isinstance(errors[0], dict) else {}
    extensions = first.get("extensions") or {}
    kind = _EXTENSION_CODES.get(
        str(extensions.get("code", "")).upper(), LinearApiErrorKind.GRAPHQL_ERROR
    )
    message = (
        extensions.get("userPresentableMessage")
        or first.get("message")
        or "Linear GraphQL error"
    )
    return LinearApiError(
        message,
        kind,
        status_code=response.status_code,
        retry_after=_parse_retry_after(response.headers),
        raw=errors,
    )
