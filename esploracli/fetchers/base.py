"""Resilient HTTP GET with per-attempt timeout and exponential backoff.

Every network call in esploracli goes through ResilientFetcher.fetch().
Readers and aggregators add no retry logic of their own.

Retry schedule (RetryPolicy defaults: 3 attempts, 15s timeout, 200ms base):

  attempt 1 — no wait
  attempt 2 — wait base × 1   (200ms)
  attempt 3 — wait base × 2   (400ms)
  attempt n — wait base × 2^(n-2)

No jitter, no cap, and no wait after the final attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from esploracli.events import EventSink, NullEventSink
from esploracli.exceptions import (
    ExhaustedRetriesError,
    FetchError,
    HttpStatusError,
    RequestTimeoutError,
    TransportError,
)
from esploracli.models import FetchAttempt

Sleeper = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget shared read-only by every fetch of one client."""

    max_attempts: int = 3
    timeout_ms: int = 15_000
    backoff_base_ms: int = 200

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def backoff_ms(self, attempt: int) -> int:
        """Milliseconds to wait before `attempt` (1-based)."""
        if attempt < 2:
            return 0
        return self.backoff_base_ms * 2 ** (attempt - 2)


class ResilientFetcher:
    """
    Issue one logical GET, retrying failed attempts.

    Failures that count against the budget:
    - no response within policy.timeout_ms   → RequestTimeoutError
    - connection-level httpx errors          → TransportError
    - any non-2xx status                     → HttpStatusError

    Once the budget is spent, ExhaustedRetriesError is raised from the last
    attempt's error. A successful response is returned as-is; interpreting
    the body (and rejecting a wrong shape) is the caller's job and is never
    retried.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy | None = None,
        sink: EventSink | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._client = client
        self._policy = policy or RetryPolicy()
        self._sink = sink or NullEventSink()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def fetch(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        policy: RetryPolicy | None = None,
    ) -> httpx.Response:
        """GET `url`, retrying per `policy` (defaults to the fetcher's policy)."""
        policy = policy or self._policy
        last_error: FetchError | None = None

        for attempt in range(1, policy.max_attempts + 1):
            if attempt > 1:
                await self._sleep(policy.backoff_ms(attempt) / 1000)

            try:
                resp = await self._attempt(url, headers, params, policy)
            except FetchError as e:
                last_error = e
                self._sink.emit(
                    FetchAttempt(
                        url=url,
                        attempt=attempt,
                        outcome=_outcome_of(e),
                        status_code=getattr(e, "status_code", None),
                        error=e.message,
                    ).to_event()
                )
                continue

            self._sink.emit(
                FetchAttempt(
                    url=url,
                    attempt=attempt,
                    outcome="success",
                    status_code=resp.status_code,
                ).to_event()
            )
            return resp

        assert last_error is not None
        self._sink.emit({
            "type": "fetch_exhausted",
            "level": "error",
            "url": url,
            "attempts": policy.max_attempts,
            "error": last_error.message,
        })
        raise ExhaustedRetriesError(url, policy.max_attempts, last_error) from last_error

    async def _attempt(
        self,
        url: str,
        headers: dict[str, str] | None,
        params: dict[str, Any] | None,
        policy: RetryPolicy,
    ) -> httpx.Response:
        """One HTTP attempt. Raises a FetchError subclass on any failure."""
        try:
            resp = await asyncio.wait_for(
                self._client.get(
                    url,
                    headers=headers,
                    params=params,
                    timeout=policy.timeout_seconds,
                ),
                timeout=policy.timeout_seconds,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise RequestTimeoutError(
                f"No response from {url} within {policy.timeout_ms}ms",
                details={"url": url, "timeout_ms": policy.timeout_ms},
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"Cannot reach {url}: {e}",
                details={"url": url},
            ) from e

        if not resp.is_success:
            raise HttpStatusError(resp.status_code, _safe_text(resp), url=url)
        return resp


def _outcome_of(error: FetchError) -> str:
    if isinstance(error, RequestTimeoutError):
        return "timeout"
    if isinstance(error, HttpStatusError):
        return "http_error"
    return "transport_error"


def _safe_text(resp: httpx.Response) -> str:
    try:
        return resp.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""
