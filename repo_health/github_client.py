"""Async GitHub API client (REST and GraphQL) with retry and batching helpers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import httpx

from repo_health.config import (
    GITHUB_API_BASE,
    GITHUB_TOKEN,
    GRAPHQL_URL,
    REQUEST_TIMEOUT,
    RETRY_BASE_DELAY,
    RETRY_MAX,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# ── Errors ──────────────────────────────────────────────────────────────────

class GitHubAPIError(RuntimeError):
    """A non-success response from the GitHub API."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(GitHubAPIError):
    """Primary or secondary rate limit hit."""


class GraphQLError(GitHubAPIError):
    """The GraphQL endpoint answered 200 with an ``errors`` array."""

    def __init__(self, message: str, types: Sequence[str] = ()) -> None:
        super().__init__(message, status=200)
        self.types = list(types)


_TIMEOUT_MARKERS = ("couldn't respond", "timeout", "timed out")


def classify_error(exc: BaseException) -> str | None:
    """Return a short reason if *exc* is worth retrying, else ``None``."""
    if isinstance(exc, RateLimitError):
        return "rate limit"
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, httpx.TransportError):
        return "network error"
    if isinstance(exc, GraphQLError):
        message = str(exc).lower()
        if any(marker in message for marker in _TIMEOUT_MARKERS):
            return "timeout"
        return None
    if isinstance(exc, GitHubAPIError) and exc.status is not None and 500 <= exc.status < 600:
        return f"server error ({exc.status})"
    return None


def is_retriable(exc: BaseException) -> bool:
    return classify_error(exc) is not None


# ── Retry / batching primitives ─────────────────────────────────────────────

async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = RETRY_MAX,
    base_delay: float = RETRY_BASE_DELAY,
) -> T:
    """Await ``operation()``, retrying retriable failures with exponential backoff.

    The delay before retry *n* (0-based) is ``base_delay * 2**n``.  Fatal
    errors, and the failure of the final attempt, propagate unchanged.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            reason = classify_error(exc)
            if reason is None or attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "%s, retrying in %.1fs (attempt %d/%d): %s",
                reason.capitalize(),
                delay,
                attempt + 1,
                max_retries,
                exc,
            )
            await asyncio.sleep(delay)
            attempt += 1


async def run_batched(
    items: Sequence[T],
    batch_size: int,
    delay: float,
    processor: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Run *processor* over *items* with at most *batch_size* calls in flight.

    Sleeps *delay* seconds between batches (not after the last one).
    Results come back in input order.
    """
    results: list[R] = []
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        batch_results = await asyncio.gather(*(processor(item) for item in batch))
        results.extend(batch_results)
        if start + batch_size < len(items):
            await asyncio.sleep(delay)
    return results


# ── Client ──────────────────────────────────────────────────────────────────

class GitHubClient:
    """Async GitHub client for REST and GraphQL.

    Each call makes exactly one HTTP request and raises a classified error on
    failure; callers wrap calls in :func:`with_retry`.
    """

    def __init__(
        self,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token or GITHUB_TOKEN
        if not self._token:
            raise ValueError(
                "GITHUB_TOKEN (or GH_PAT) is required. Set it as an environment variable."
            )
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )

    # ── GraphQL ─────────────────────────────────────────────────────────

    async def graphql(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute a GraphQL query and return the ``data`` dict."""
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        resp = await self._client.post(GRAPHQL_URL, json=payload)
        self._check_response(resp)
        body = resp.json()

        errors = body.get("errors")
        if errors:
            types = [e.get("type", "") for e in errors if isinstance(e, dict)]
            message = "; ".join(
                e.get("message", str(e)) if isinstance(e, dict) else str(e)
                for e in errors
            )
            if "RATE_LIMITED" in types or "rate limit" in message.lower():
                raise RateLimitError(f"GraphQL rate limit: {message}", status=200)
            raise GraphQLError(f"GraphQL errors: {message}", types)

        data = body.get("data")
        if data is None:
            raise GraphQLError("GraphQL response contained no data")
        return data

    # ── REST ────────────────────────────────────────────────────────────

    async def rest_get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a GET request to the GitHub REST API and return parsed JSON."""
        resp = await self._client.get(f"{GITHUB_API_BASE}{endpoint}", params=params)
        self._check_response(resp)
        return resp.json()

    # ── Response helpers ────────────────────────────────────────────────

    def _check_response(self, resp: httpx.Response) -> None:
        """Log quota headers and raise a classified error for non-2xx responses."""
        remaining = resp.headers.get("X-RateLimit-Remaining")
        limit = resp.headers.get("X-RateLimit-Limit")
        if remaining is not None and limit is not None:
            logger.debug("Rate limit: %s/%s remaining", remaining, limit)

        if resp.is_success:
            return

        status = resp.status_code
        text = resp.text[:500]
        if status == 429 or (status == 403 and _is_rate_limited_403(resp)):
            raise RateLimitError(f"Rate limited (HTTP {status}): {text}", status=status)
        raise GitHubAPIError(
            f"{resp.request.method} {resp.request.url} failed with HTTP {status}: {text}",
            status=status,
        )

    # ── Context manager ─────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def _is_rate_limited_403(resp: httpx.Response) -> bool:
    if resp.headers.get("X-RateLimit-Remaining") == "0":
        return True
    if "Retry-After" in resp.headers:
        return True
    return "rate limit" in resp.text.lower()
