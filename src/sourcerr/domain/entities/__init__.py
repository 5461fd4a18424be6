from .sources import (
    DEFAULT_MAX_PLAY_SOURCES,
    AggregateState,
    CacheEntry,
    CoordinatorState,
    EnrichedResult,
    ProcessResult,
    ProviderInfo,
    RawResult,
    Session,
    SessionPhase,
    SourceResult,
)

__all__ = [
    "DEFAULT_MAX_PLAY_SOURCES",
    "AggregateState",
    "CacheEntry",
    "CoordinatorState",
    "EnrichedResult",
    "ProcessResult",
    "ProviderInfo",
    "RawResult",
    "Session",
    "SessionPhase",
    "SourceResult",
]
