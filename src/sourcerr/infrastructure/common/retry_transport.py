"""Retrying httpx transport for the provider backend.

The backend proxies third-party providers, so most of its transient
failures surface as gateway errors (502/504), overload (429/503), or a
dropped connection. Only idempotent requests are replayed.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx
import structlog

log = structlog.get_logger(__name__)

RETRYABLE_STATUS = frozenset({429, 502, 503, 504})
RETRYABLE_ERRORS: tuple[type[httpx.TransportError], ...] = (
    httpx.ConnectError,
    httpx.RemoteProtocolError,
)
_IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def retry_after_seconds(
    headers: httpx.Headers, now: datetime | None = None
) -> float | None:
    """Delay requested by ``Retry-After``, in seconds.

    Accepts both forms the header allows (delta-seconds and HTTP-date).
    ``None`` when absent or unparseable; dates in the past yield ``0.0``.
    """
    value = headers.get("retry-after")
    if value is None:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((when - now).total_seconds(), 0.0)


class RetryTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        max_backoff: float = 10.0,
        retryable_status_codes: frozenset[int] = RETRYABLE_STATUS,
    ) -> None:
        self._wrapped = wrapped
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._retryable = retryable_status_codes

    def _backoff(self, attempt: int) -> float:
        jitter = random.uniform(0, self._backoff_base)  # noqa: S311
        return min(self._backoff_base * 2**attempt + jitter, self._max_backoff)

    def _delay_for(self, response: httpx.Response, attempt: int) -> float:
        requested = retry_after_seconds(response.headers)
        if requested is None:
            return self._backoff(attempt)
        return min(requested, self._max_backoff)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.method not in _IDEMPOTENT_METHODS:
            return await self._wrapped.handle_async_request(request)

        attempt = 0
        while True:
            exhausted = attempt >= self._max_retries
            try:
                response = await self._wrapped.handle_async_request(request)
            except RETRYABLE_ERRORS as exc:
                if exhausted:
                    raise
                reason: str | int = type(exc).__name__
                delay = self._backoff(attempt)
            else:
                if exhausted or response.status_code not in self._retryable:
                    return response
                await response.aclose()
                reason = response.status_code
                delay = self._delay_for(response, attempt)

            attempt += 1
            log.info(
                "backend_request_retry",
                host=request.url.host,
                path=request.url.path,
                reason=reason,
                attempt=attempt,
                delay=round(delay, 2),
            )
            await asyncio.sleep(delay)

    async def aclose(self) -> None:
        await self._wrapped.aclose()
