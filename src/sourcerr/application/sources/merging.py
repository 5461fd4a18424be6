"""Fold provider batches into a capped aggregate."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sourcerr.application.sources.normalizer import normalize_provider_name
from sourcerr.application.sources.ranking import (
    build_dedupe_key,
    merge_by_dedupe_key,
    prefer_raw,
)
from sourcerr.domain.entities.sources import (
    DEFAULT_MAX_PLAY_SOURCES,
    EnrichedResult,
    ProcessResult,
    RawResult,
)


def prepare_candidates(
    raw_results: Iterable[RawResult],
    *,
    context_provider_id: str | None = None,
) -> list[EnrichedResult]:
    """Drop unusable results and collapse the batch by dedupe key.

    Within a batch the raw ranking decides which variant survives; the
    returned candidates carry no resolution label yet.
    """
    kept: dict[str, RawResult] = {}
    for raw in raw_results:
        if not raw.is_usable():
            continue
        key = build_dedupe_key(raw, context_provider_id)
        existing = kept.get(key)
        if existing is None or prefer_raw(existing, raw):
            kept[key] = raw

    return [
        EnrichedResult(
            raw=raw,
            dedupe_key=key,
            normalized_provider_name=normalize_provider_name(
                raw.provider_display_name or raw.provider_id
            ),
        )
        for key, raw in kept.items()
    ]


def _changed(previous: EnrichedResult, current: EnrichedResult) -> bool:
    return (
        previous.episode_count != current.episode_count
        or previous.resolution_label != current.resolution_label
        or previous.provider_display_name != current.provider_display_name
    )


def process_new_results(
    current: Sequence[EnrichedResult],
    candidates: Sequence[EnrichedResult],
    *,
    merge: bool = True,
    cap: int = DEFAULT_MAX_PLAY_SOURCES,
) -> ProcessResult:
    """Merge *candidates* into *current* and truncate to *cap*.

    The truncation applies to every merge, replacements included, so the
    aggregate never holds more than *cap* entries.
    """
    combined = [*current, *candidates] if merge else list(candidates)
    truncated = tuple(merge_by_dedupe_key(combined)[:cap])

    previous = {item.dedupe_key: item for item in current}
    added: list[str] = []
    updated: list[str] = []
    for item in truncated:
        before = previous.get(item.dedupe_key)
        if before is None:
            added.append(item.dedupe_key)
        elif before is not item and _changed(before, item):
            updated.append(item.dedupe_key)

    return ProcessResult(
        results=truncated,
        added=tuple(added),
        updated=tuple(updated),
        reached_max=len(truncated) >= cap,
    )
