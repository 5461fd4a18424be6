"""Bounded concurrent fan-out over an ordered provider list.

``MAX_CONCURRENCY`` workers share one cursor over the provider list.
Each worker keeps claiming the next unqueried provider until the list
is exhausted, the session is cancelled, or the live aggregate already
holds ``cap`` results (no point spending network calls past the cap).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from sourcerr.domain.entities.sources import DEFAULT_MAX_PLAY_SOURCES, RawResult
from sourcerr.domain.exceptions import NoUsableResultsError, SearchCancelledError

log = structlog.get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 3

QueryFn = Callable[[str], Awaitable[list[RawResult]]]
MergeFn = Callable[[str, list[RawResult]], Awaitable[None]]
FailureFn = Callable[[str, Exception], None]


class _MetricsRecorder(Protocol):
    def record_provider_search(
        self,
        name: str,
        duration_ns: int,
        result_count: int,
        *,
        success: bool,
    ) -> None: ...


@dataclass
class PoolReport:
    """What one pool run did, for logging and tests."""

    queried: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    cap_reached: bool = False
    cancelled: bool = False


class SourceSearchPool:
    """Query providers with bounded concurrency, merging as answers arrive.

    The cursor and the aggregate are shared between workers without a
    lock: under asyncio nothing else runs between the cap check, the
    cursor claim and the merge callback's synchronous section.
    """

    def __init__(
        self,
        providers: Sequence[str],
        *,
        query_fn: QueryFn,
        merge_fn: MergeFn,
        result_count: Callable[[], int],
        is_cancelled: Callable[[], bool],
        on_failure: FailureFn | None = None,
        cap: int = DEFAULT_MAX_PLAY_SOURCES,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        metrics: _MetricsRecorder | None = None,
    ) -> None:
        self._providers = list(providers)
        self._query_fn = query_fn
        self._merge_fn = merge_fn
        self._result_count = result_count
        self._is_cancelled = is_cancelled
        self._on_failure = on_failure
        self._cap = cap
        self._max_concurrency = max(1, max_concurrency)
        self._metrics = metrics
        self._cursor = 0
        self._report = PoolReport()

    def _claim(self) -> str | None:
        if self._cursor >= len(self._providers):
            return None
        provider_id = self._providers[self._cursor]
        self._cursor += 1
        return provider_id

    async def run(self) -> PoolReport:
        """Run all workers to completion and return the report.

        An unexpected error in one worker does not orphan the others: every
        worker finishes, then the first such error is re-raised.
        """
        worker_count = min(self._max_concurrency, len(self._providers))
        if worker_count == 0:
            return self._report

        log.debug(
            "pool_start",
            providers=len(self._providers),
            workers=worker_count,
            cap=self._cap,
        )
        outcomes = await asyncio.gather(
            *(self._worker(n) for n in range(worker_count)),
            return_exceptions=True,
        )
        crashed = [o for o in outcomes if isinstance(o, Exception)]
        log.info(
            "pool_complete",
            queried=len(self._report.queried),
            succeeded=len(self._report.succeeded),
            failed=len(self._report.failed),
            skipped=len(self._providers) - len(self._report.queried),
            cap_reached=self._report.cap_reached,
            cancelled=self._report.cancelled,
            crashed_workers=len(crashed),
        )
        if crashed:
            raise crashed[0]
        return self._report

    async def _worker(self, worker_id: int) -> None:
        while True:
            if self._is_cancelled():
                self._report.cancelled = True
                return
            if self._result_count() >= self._cap:
                if not self._report.cap_reached:
                    log.debug("pool_cap_reached", worker=worker_id, cap=self._cap)
                self._report.cap_reached = True
                return

            provider_id = self._claim()
            if provider_id is None:
                return
            self._report.queried.append(provider_id)

            try:
                results = await self._search_one(provider_id)
            except SearchCancelledError:
                self._report.cancelled = True
                return

            if results is None:
                continue
            if self._is_cancelled():
                self._report.cancelled = True
                return
            await self._merge_fn(provider_id, results)
            self._report.succeeded.append(provider_id)

    async def _search_one(self, provider_id: str) -> list[RawResult] | None:
        """Query one provider; return usable results or ``None`` on failure."""
        t0 = time.perf_counter_ns()
        try:
            results = await self._query_fn(provider_id)
            usable = [r for r in results if r.is_usable()]
            if not usable:
                raise NoUsableResultsError(
                    provider_id, f"provider {provider_id!r} returned no usable results"
                )
        except SearchCancelledError:
            log.debug("pool_provider_cancelled", provider=provider_id)
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning(
                "provider_search_failed",
                provider=provider_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._record(provider_id, t0, 0, success=False)
            self._report.failed.append(provider_id)
            if self._on_failure is not None:
                self._on_failure(provider_id, exc)
            return None

        self._record(provider_id, t0, len(usable), success=True)
        log.debug("provider_search_done", provider=provider_id, result_count=len(usable))
        return usable

    def _record(self, provider_id: str, t0: int, count: int, *, success: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_provider_search(
                provider_id,
                time.perf_counter_ns() - t0,
                count,
                success=success,
            )
