"""Domain entities for multi-provider play source aggregation.

Pure value objects without framework dependencies or I/O.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Literal

# Maximum number of play sources kept per aggregate.
DEFAULT_MAX_PLAY_SOURCES = 8


@dataclass(frozen=True)
class RawResult:
    """A single provider answer, exactly as the provider returned it."""

    provider_id: str
    provider_display_name: str
    title: str
    episodes: tuple[str, ...] = ()
    raw_id: str = ""
    year: str | None = None
    description: str | None = None
    poster: str | None = None
    kind: Literal["raw"] = field(default="raw", init=False)

    @property
    def episode_count(self) -> int:
        return len(self.episodes)

    def is_usable(self) -> bool:
        """A result is usable when it exposes at least one playable episode."""
        return bool(self.episodes)


@dataclass(frozen=True)
class EnrichedResult:
    """A raw result tagged with its merge identity and probed quality.

    Identity for merging is ``dedupe_key``, not ``provider_id``: one
    provider can expose several marketing-suffixed listings that all
    collapse onto the same key.
    """

    raw: RawResult
    dedupe_key: str
    normalized_provider_name: str
    resolution_label: str | None = None
    kind: Literal["enriched"] = field(default="enriched", init=False)

    @property
    def provider_id(self) -> str:
        return self.raw.provider_id

    @property
    def provider_display_name(self) -> str:
        return self.raw.provider_display_name

    @property
    def title(self) -> str:
        return self.raw.title

    @property
    def episodes(self) -> tuple[str, ...]:
        return self.raw.episodes

    @property
    def episode_count(self) -> int:
        return len(self.raw.episodes)

    @property
    def raw_id(self) -> str:
        return self.raw.raw_id

    def with_resolution(self, label: str | None) -> EnrichedResult:
        return replace(self, resolution_label=label)


SourceResult = RawResult | EnrichedResult


@dataclass(frozen=True)
class AggregateState:
    """Merged, capped view over every provider answer of one session.

    Invariants:
      - ``dedupe_key`` values in ``results`` are pairwise distinct
      - ``len(results) <= cap``
      - ``active_result`` is ``None`` or a member of ``results``
      - ``failed_provider_ids`` only grows within a session
    """

    results: tuple[EnrichedResult, ...] = ()
    active_result: EnrichedResult | None = None
    all_providers_settled: bool = False
    failed_provider_ids: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.results

    def find(self, dedupe_key: str) -> EnrichedResult | None:
        for item in self.results:
            if item.dedupe_key == dedupe_key:
                return item
        return None

    def with_failed(self, provider_id: str) -> AggregateState:
        if provider_id in self.failed_provider_ids:
            return self
        return replace(
            self, failed_provider_ids=self.failed_provider_ids | {provider_id}
        )


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of folding one batch of provider answers into an aggregate."""

    results: tuple[EnrichedResult, ...]
    added: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    reached_max: bool = False


class SessionPhase(str, Enum):
    """Lifecycle of one aggregation session."""

    INIT = "init"
    CACHE_HIT = "cache_hit"
    FAST_PATH = "fast_path"
    ENRICHING = "enriching"
    FANOUT = "fanout"
    DONE = "done"


@dataclass
class Session:
    """One aggregation run for a (query, preferred provider, stable id) triple.

    A session is superseded as soon as a newer one starts; after that it
    must not write shared state, even while its network calls are still
    in flight.
    """

    token: int
    cache_key: str
    query: str
    preferred_provider_id: str | None = None
    stable_id: str | None = None
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)
    phase: SessionPhase = SessionPhase.INIT

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of a finished (or progressing) session, keyed by cache key."""

    cache_key: str
    aggregate: AggregateState
    active_result: EnrichedResult | None
    timestamp: float


@dataclass(frozen=True)
class CoordinatorState:
    """What the coordinator publishes to its subscribers."""

    query: str | None = None
    aggregate: AggregateState = field(default_factory=AggregateState)
    loading: bool = False
    error: str | None = None
    is_favorited: bool = False
    phase: SessionPhase = SessionPhase.INIT

    @property
    def results(self) -> tuple[EnrichedResult, ...]:
        return self.aggregate.results

    @property
    def active_result(self) -> EnrichedResult | None:
        return self.aggregate.active_result


@dataclass(frozen=True)
class ProviderInfo:
    """Catalogue entry for one provider exposed by the backend."""

    key: str
    name: str
    api: str = ""
