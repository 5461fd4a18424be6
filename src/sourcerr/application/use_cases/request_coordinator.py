"""Play source aggregation use case.

query -> (session cache | preferred provider fast path | fan-out pool)
-> normalize + dedupe + probe -> capped, ranked AggregateState.

One coordinator owns at most one live session. Starting a new session
supersedes the previous one: its cancellation signal is set and its
token stops matching, so any of its callbacks that still run after an
``await`` find themselves stale and drop their writes.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any, Protocol

import structlog

from sourcerr.application.sources.merging import (
    prepare_candidates,
    process_new_results,
)
from sourcerr.application.sources.normalizer import build_cache_key, normalize
from sourcerr.application.sources.search_pool import PoolReport, SourceSearchPool
from sourcerr.application.use_cases.playback_failover import PlaybackFailoverSelector
from sourcerr.domain.entities.sources import (
    AggregateState,
    CacheEntry,
    CoordinatorState,
    EnrichedResult,
    RawResult,
    Session,
    SessionPhase,
)
from sourcerr.domain.exceptions import (
    NoProvidersEnabledError,
    NoSourceFoundError,
    SearchCancelledError,
)
from sourcerr.domain.ports.aggregate_cache import AggregateCachePort
from sourcerr.domain.ports.favorites import FavoritesStorePort
from sourcerr.domain.ports.provider import ProviderClientPort
from sourcerr.domain.ports.resolution_probe import ResolutionProbePort

# ---------------------------------------------------------------------------
# Protocols: what this use case needs from configuration and metrics.
# ---------------------------------------------------------------------------


class _AggregationConfig(Protocol):
    max_play_sources: int
    max_concurrent_source_requests: int
    probe_timeout_seconds: float


class _ProviderSelection(Protocol):
    enabled_all: bool
    enabled: list[str]


class _MetricsRecorder(Protocol):
    def record_provider_search(
        self,
        name: str,
        duration_ns: int,
        result_count: int,
        *,
        success: bool,
    ) -> None: ...

    def record_probe(self, *, duration_ns: int, labelled: bool) -> None: ...


StateListener = Callable[[CoordinatorState], None]

log = structlog.get_logger(__name__)


def _resolve_active(
    results: Sequence[EnrichedResult],
    current: EnrichedResult | None,
) -> EnrichedResult | None:
    """Keep the active source on its dedupe key, default to the first result."""
    if current is not None:
        for item in results:
            if item.dedupe_key == current.dedupe_key:
                return item
    return results[0] if results else None


class RequestCoordinator:
    """Resolve a title into a bounded, ranked list of play sources.

    Flow:
        1. Supersede the previous session.
        2. Short-circuit on a non-empty session cache entry.
        3. Preferred provider alone (fast path); on success unblock the
           caller and enrich in the background.
        4. On fast-path failure, try the aggregated search endpoint
           filtered to the exact title.
        5. Otherwise fan out over all enabled providers.
        6. Finalize: not-found error or settled aggregate, favorite
           status, cache entry.
    """

    def __init__(
        self,
        *,
        providers: ProviderClientPort,
        probe: ResolutionProbePort,
        cache: AggregateCachePort,
        config: _AggregationConfig,
        selection: _ProviderSelection,
        favorites: FavoritesStorePort | None = None,
        failover: PlaybackFailoverSelector | None = None,
        metrics: _MetricsRecorder | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._providers = providers
        self._probe = probe
        self._cache = cache
        self._favorites = favorites
        self._failover = failover or PlaybackFailoverSelector()
        self._metrics = metrics
        self._clock = clock
        self._cap = config.max_play_sources
        self._max_concurrency = config.max_concurrent_source_requests
        self._probe_timeout = config.probe_timeout_seconds
        self._selection = selection

        self._tokens = itertools.count(1)
        self._token = 0
        self._session: Session | None = None
        self._background: asyncio.Task[None] | None = None
        self._state = CoordinatorState()
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for every published state; returns unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:  # noqa: BLE001
                log.warning("state_listener_failed", exc_info=True)

    def _is_current(self, session: Session) -> bool:
        return session.token == self._token and not session.is_cancelled

    def _publish(self, session: Session, **changes: Any) -> bool:
        """Apply *changes* if *session* is still current; drop them otherwise."""
        if not self._is_current(session):
            log.debug(
                "stale_write_dropped",
                token=session.token,
                current_token=self._token,
                fields=sorted(changes),
            )
            return False
        self._state = replace(self._state, **changes)
        self._notify()
        return True

    def _enter(self, session: Session, phase: SessionPhase) -> bool:
        if not self._is_current(session):
            return False
        session.phase = phase
        return self._publish(session, phase=phase)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _begin(
        self,
        query: str,
        preferred_provider_id: str | None,
        stable_id: str | None,
    ) -> Session:
        previous = self._session
        if previous is not None and not previous.is_cancelled:
            previous.cancel()
            log.debug("session_superseded", token=previous.token, query=previous.query)
        self._cancel_background()

        self._token = next(self._tokens)
        session = Session(
            token=self._token,
            cache_key=build_cache_key(query, preferred_provider_id, stable_id),
            query=query,
            preferred_provider_id=preferred_provider_id,
            stable_id=stable_id,
        )
        self._session = session
        return session

    def _cancel_background(self) -> None:
        task = self._background
        self._background = None
        if task is not None and not task.done():
            task.cancel()

    async def init(
        self,
        query: str,
        preferred_provider_id: str | None = None,
        stable_id: str | None = None,
    ) -> CoordinatorState:
        """Start (or reuse) the session for this query and run it.

        Returns once the caller has something to show: a cache hit, a
        successful fast path (enrichment continues in the background), or
        the settled fan-out.
        """
        current = self._session
        cache_key = build_cache_key(query, preferred_provider_id, stable_id)
        if (
            current is not None
            and not current.is_cancelled
            and current.cache_key == cache_key
            and self._is_reusable(current)
        ):
            log.debug("session_reused", token=current.token, query=query)
            return self._state

        session = self._begin(query, preferred_provider_id, stable_id)
        log.info(
            "session_start",
            token=session.token,
            query=query,
            preferred_provider=preferred_provider_id,
            stable_id=stable_id,
        )

        entry = self._cache.get(session.cache_key)
        if entry is not None and not entry.aggregate.is_empty:
            self._publish_cache_hit(session, entry)
            await self._refresh_favorite(session)
            return self._state

        self._state = CoordinatorState(
            query=query,
            aggregate=AggregateState(),
            loading=True,
            phase=SessionPhase.INIT,
        )
        self._notify()

        try:
            enabled = await self._enabled_providers(session)
        except SearchCancelledError:
            return self._state
        if not self._is_current(session):
            return self._state
        if enabled is None:
            self._fail(session, NoSourceFoundError())
            return self._state
        if not enabled:
            self._fail(session, NoProvidersEnabledError())
            return self._state

        if preferred_provider_id:
            self._enter(session, SessionPhase.FAST_PATH)
            if await self._run_fast_path(session, preferred_provider_id):
                remaining = [p for p in enabled if p != preferred_provider_id]
                self._enter(session, SessionPhase.ENRICHING)
                self._background = asyncio.create_task(
                    self._enrich_in_background(session, remaining),
                    name=f"sourcerr-enrich-{session.token}",
                )
                return self._state

            if not self._is_current(session):
                return self._state
            self._record_failure(session, preferred_provider_id)
            if await self._run_search_all_fallback(session, enabled):
                await self._finalize(session)
                return self._state

        if not self._is_current(session):
            return self._state
        self._enter(session, SessionPhase.FANOUT)
        failed = self._state.aggregate.failed_provider_ids
        await self._run_pool(session, [p for p in enabled if p not in failed])
        await self._finalize(session)
        return self._state

    def _is_reusable(self, session: Session) -> bool:
        """A running session, or a finished one that found something."""
        if session.phase is not SessionPhase.DONE:
            return True
        return self._state.error is None and not self._state.aggregate.is_empty

    def _publish_cache_hit(self, session: Session, entry: CacheEntry) -> None:
        session.phase = SessionPhase.CACHE_HIT
        aggregate = replace(
            entry.aggregate,
            active_result=_resolve_active(
                entry.aggregate.results, entry.active_result
            ),
            failed_provider_ids=frozenset(),
        )
        self._state = CoordinatorState(
            query=session.query,
            aggregate=aggregate,
            loading=False,
            phase=SessionPhase.CACHE_HIT,
        )
        self._notify()
        self._enter(session, SessionPhase.DONE)
        log.info(
            "session_cache_hit",
            token=session.token,
            query=session.query,
            result_count=len(aggregate.results),
        )

    def abort(self) -> None:
        """Cancel the current session without starting a new one."""
        session = self._session
        if session is not None and not session.is_cancelled:
            session.cancel()
            log.info("session_aborted", token=session.token, query=session.query)
        self._cancel_background()

    async def wait_settled(self) -> CoordinatorState:
        """Wait for background enrichment of the current session, if any."""
        task = self._background
        if task is not None:
            await asyncio.wait({task})
        return self._state

    async def aclose(self) -> None:
        self.abort()

    # ------------------------------------------------------------------
    # Provider access
    # ------------------------------------------------------------------

    async def _enabled_providers(self, session: Session) -> list[str] | None:
        """Provider keys the user enabled, in catalogue order.

        ``None`` means the catalogue could not be loaded and no explicit
        selection exists to fall back on.
        """
        try:
            catalogue = await self._providers.list_providers()
        except SearchCancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning(
                "provider_catalogue_failed",
                token=session.token,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if self._selection.enabled_all:
                return None
            return list(self._selection.enabled)

        keys = [info.key for info in catalogue]
        if self._selection.enabled_all:
            return keys
        wanted = set(self._selection.enabled)
        return [key for key in keys if key in wanted]

    async def _run_fast_path(self, session: Session, provider_id: str) -> bool:
        """Query the preferred provider alone; ``True`` if it produced a source."""
        t0 = time.perf_counter_ns()
        try:
            raw = await self._providers.search(
                provider_id, session.query, session.cancelled
            )
        except SearchCancelledError:
            log.debug("fast_path_cancelled", token=session.token, provider=provider_id)
            return False
        except Exception as exc:  # noqa: BLE001
            log.warning(
                "provider_search_failed",
                provider=provider_id,
                error=str(exc),
                error_type=type(exc).__name__,
                fast_path=True,
            )
            self._record_metric(provider_id, t0, 0, success=False)
            return False

        usable = [r for r in raw if r.is_usable()]
        self._record_metric(provider_id, t0, len(usable), success=bool(usable))
        if not usable:
            log.warning(
                "preferred_provider_empty",
                provider=provider_id,
                query=session.query,
                raw_count=len(raw),
            )
            return False

        await self._merge_raw(
            session, usable, context_provider_id=provider_id, merge=False
        )
        return self._is_current(session) and not self._state.aggregate.is_empty

    async def _run_search_all_fallback(
        self, session: Session, enabled: Sequence[str]
    ) -> bool:
        """Aggregated search filtered to the exact title and enabled providers."""
        try:
            raw = await self._providers.search_all(session.query, session.cancelled)
        except SearchCancelledError:
            return False
        except Exception as exc:  # noqa: BLE001
            log.warning(
                "search_all_failed",
                query=session.query,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        if not self._is_current(session):
            return False

        wanted = normalize(session.query)
        allowed = set(enabled) - self._state.aggregate.failed_provider_ids
        matching = [
            r
            for r in raw
            if normalize(r.title) == wanted and r.provider_id in allowed
        ]
        log.info(
            "search_all_fallback",
            query=session.query,
            total=len(raw),
            matching=len(matching),
        )
        if not matching:
            return False

        await self._merge_raw(session, matching)
        return self._is_current(session) and not self._state.aggregate.is_empty

    async def _run_pool(self, session: Session, providers: Sequence[str]) -> PoolReport:
        async def _query(provider_id: str) -> list[RawResult]:
            return await self._providers.search(
                provider_id, session.query, session.cancelled
            )

        async def _merge(provider_id: str, results: list[RawResult]) -> None:
            await self._merge_raw(session, results)

        pool = SourceSearchPool(
            providers,
            query_fn=_query,
            merge_fn=_merge,
            result_count=lambda: len(self._state.aggregate.results),
            is_cancelled=lambda: not self._is_current(session),
            on_failure=lambda provider_id, _exc: self._record_failure(
                session, provider_id
            ),
            cap=self._cap,
            max_concurrency=self._max_concurrency,
            metrics=self._metrics,
        )
        return await pool.run()

    async def _enrich_in_background(
        self, session: Session, providers: Sequence[str]
    ) -> None:
        """Fan out after a successful fast path; failures are never surfaced."""
        try:
            await self._run_pool(session, providers)
        except Exception:  # noqa: BLE001
            log.warning(
                "background_enrichment_failed",
                token=session.token,
                query=session.query,
                exc_info=True,
            )
        await self._finalize(session)

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    async def _probe_one(
        self, session: Session, candidate: EnrichedResult
    ) -> EnrichedResult:
        t0 = time.perf_counter_ns()
        label: str | None = None
        try:
            label = await asyncio.wait_for(
                self._probe.probe(candidate.episodes[0], session.cancelled),
                timeout=self._probe_timeout,
            )
        except TimeoutError:
            log.debug(
                "probe_timeout",
                provider=candidate.provider_id,
                timeout=self._probe_timeout,
            )
        except Exception:  # noqa: BLE001
            log.debug("probe_failed", provider=candidate.provider_id, exc_info=True)
        if self._metrics is not None:
            self._metrics.record_probe(
                duration_ns=time.perf_counter_ns() - t0, labelled=label is not None
            )
        return candidate.with_resolution(label)

    async def _merge_raw(
        self,
        session: Session,
        raw: Sequence[RawResult],
        *,
        context_provider_id: str | None = None,
        merge: bool = True,
    ) -> None:
        """Collapse, probe and fold one batch into the session aggregate."""
        candidates = prepare_candidates(raw, context_provider_id=context_provider_id)
        if not candidates:
            return

        enriched = await asyncio.gather(
            *(self._probe_one(session, c) for c in candidates)
        )
        if not self._is_current(session):
            log.debug("stale_merge_dropped", token=session.token)
            return

        aggregate = self._state.aggregate
        outcome = process_new_results(
            aggregate.results, enriched, merge=merge, cap=self._cap
        )
        aggregate = replace(
            aggregate,
            results=outcome.results,
            active_result=_resolve_active(outcome.results, aggregate.active_result),
        )
        self._publish(
            session,
            aggregate=aggregate,
            loading=self._state.loading and aggregate.is_empty,
        )
        self._persist(session)
        log.debug(
            "aggregate_merged",
            token=session.token,
            added=list(outcome.added),
            updated=list(outcome.updated),
            total=len(outcome.results),
            reached_max=outcome.reached_max,
        )

    def _record_failure(self, session: Session, provider_id: str) -> None:
        if not self._is_current(session):
            return
        self._publish(
            session, aggregate=self._state.aggregate.with_failed(provider_id)
        )

    def _record_metric(
        self, provider_id: str, t0: int, count: int, *, success: bool
    ) -> None:
        if self._metrics is not None:
            self._metrics.record_provider_search(
                provider_id, time.perf_counter_ns() - t0, count, success=success
            )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _fail(self, session: Session, error: Exception) -> None:
        published = self._publish(
            session,
            aggregate=replace(self._state.aggregate, all_providers_settled=True),
            loading=False,
            error=str(error),
            phase=SessionPhase.DONE,
        )
        if not published:
            return
        session.phase = SessionPhase.DONE
        log.warning(
            "session_failed",
            token=session.token,
            query=session.query,
            error_type=type(error).__name__,
            failed=sorted(self._state.aggregate.failed_provider_ids),
        )

    async def _finalize(self, session: Session) -> None:
        if not self._is_current(session):
            return
        if self._state.aggregate.is_empty:
            self._fail(session, NoSourceFoundError())
            return

        session.phase = SessionPhase.DONE
        self._publish(
            session,
            aggregate=replace(self._state.aggregate, all_providers_settled=True),
            loading=False,
            error=None,
            phase=SessionPhase.DONE,
        )
        await self._refresh_favorite(session)
        self._persist(session)
        log.info(
            "session_complete",
            token=session.token,
            query=session.query,
            result_count=len(self._state.aggregate.results),
            failed=sorted(self._state.aggregate.failed_provider_ids),
        )

    def _persist(self, session: Session) -> None:
        if not self._is_current(session):
            return
        aggregate = self._state.aggregate
        if aggregate.is_empty:
            return
        self._cache.put(
            CacheEntry(
                cache_key=session.cache_key,
                aggregate=aggregate,
                active_result=aggregate.active_result,
                timestamp=self._clock(),
            )
        )

    async def _refresh_favorite(self, session: Session) -> None:
        """Look up favorite status for the active source; never fatal."""
        active = self._state.aggregate.active_result
        if self._favorites is None or active is None:
            self._publish(session, is_favorited=False)
            return
        try:
            favorited = await self._favorites.is_favorited(
                active.provider_id, active.raw_id
            )
        except Exception:  # noqa: BLE001
            log.warning(
                "favorite_status_check_failed",
                provider=active.provider_id,
                exc_info=True,
            )
            return
        self._publish(session, is_favorited=favorited)

    # ------------------------------------------------------------------
    # Caller actions
    # ------------------------------------------------------------------

    async def set_active(self, result: EnrichedResult) -> CoordinatorState:
        """Switch playback to *result*, which must be one of the results."""
        aggregate = self._state.aggregate
        if result not in aggregate.results:
            raise ValueError(
                f"source {result.dedupe_key!r} is not part of the current results"
            )
        self._state = replace(
            self._state, aggregate=replace(aggregate, active_result=result)
        )
        self._notify()

        session = self._session
        if session is not None:
            await self._refresh_favorite(session)
            self._persist(session)
        return self._state

    async def toggle_favorite(self) -> bool:
        """Flip the favorite flag of the active source; returns the new flag."""
        active = self._state.aggregate.active_result
        if active is None:
            raise ValueError("no active source to favorite")
        if self._favorites is None:
            raise RuntimeError("no favorites store configured")

        favorited = await self._favorites.toggle(active)
        if self._state.aggregate.active_result == active:
            self._state = replace(self._state, is_favorited=favorited)
            self._notify()
        log.info(
            "favorite_toggled",
            provider=active.provider_id,
            raw_id=active.raw_id,
            favorited=favorited,
        )
        return favorited

    def mark_failed(self, provider_id: str, reason: str) -> None:
        """Exclude *provider_id* from failover for the rest of the session."""
        log.warning("source_marked_failed", provider=provider_id, reason=reason)
        aggregate = self._state.aggregate.with_failed(provider_id)
        if aggregate is not self._state.aggregate:
            self._state = replace(self._state, aggregate=aggregate)
            self._notify()

    def get_next_available_source(
        self, provider_id: str, episode_index: int
    ) -> EnrichedResult | None:
        return self._failover.pick_next(
            self._state.aggregate, provider_id, episode_index
        )
