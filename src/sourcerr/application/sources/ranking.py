"""Ranking rules for candidates that claim the same play-source identity.

Pure transformation logic without I/O.

Two decision stages exist:

- ``prefer_raw`` runs on raw provider answers before any probing:
  episode count, then label score, then the shorter (less decorated)
  display name.
- ``prefer_enriched`` runs once a resolution label is known:
  episode count, then resolution score, then label score.

Both return ``True`` only when *candidate* strictly beats *current*,
so equal candidates keep whichever arrived first.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from sourcerr.application.sources.normalizer import (
    normalize,
    normalize_provider_name,
    strip_variant_suffixes,
)
from sourcerr.domain.entities.sources import EnrichedResult, RawResult

_NO_ADS_MARKERS = ("无广", "无广告")

# Independent additive signals: (markers, score delta).
_LABEL_SIGNALS: tuple[tuple[tuple[str, ...], int], ...] = (
    (_NO_ADS_MARKERS, 4),
    (("蓝光",), 3),
    (("超清",), 2),
    (("高清",), 1),
    (("备用",), -3),
    (("线路", "line"), -2),
    (("主线",), -1),
)

_PIXEL_HEIGHT_RE = re.compile(r"(\d{3,4})p")

# (minimum height, score), checked top-down.
_HEIGHT_SCORES: tuple[tuple[int, int], ...] = (
    (2160, 6),
    (1440, 5),
    (1080, 4),
    (720, 3),
    (540, 2),
    (480, 1),
)

_QUALITY_WORD_SCORES: tuple[tuple[str, int], ...] = (
    ("蓝光", 4),
    ("超清", 3),
    ("高清", 2),
    ("标清", 1),
)


def label_score(display_name: str | None) -> int:
    """Score marketing words in a provider display name.

    ``"XX无广告蓝光"`` scores 4 + 3 = 7; ``"XX备用线路2"`` scores -3 - 2 = -5.
    """
    if not display_name:
        return 0
    name = display_name.strip().lower()
    score = 0
    for markers, delta in _LABEL_SIGNALS:
        if any(marker in name for marker in markers):
            score += delta
    return score


def resolution_score(label: str | None) -> int:
    """Map a probe label (``"1080p"``, ``"4K"``, ``"蓝光"``) to 0..6."""
    if not label:
        return 0
    value = label.lower()

    if "4k" in value or "2160" in value:
        return 6
    if "2k" in value or "1440" in value:
        return 5

    match = _PIXEL_HEIGHT_RE.search(value)
    if match:
        height = int(match.group(1))
        for minimum, score in _HEIGHT_SCORES:
            if height >= minimum:
                return score

    for word, score in _QUALITY_WORD_SCORES:
        if word in value:
            return score
    return 0


def build_dedupe_key(result: RawResult, context_provider_id: str | None = None) -> str:
    """Merge identity for *result*.

    Precedence: the provider id of the request that produced the result,
    then the result's own provider id, then its display name (all
    normalized and stripped of variant suffixes), finally
    ``normalize(title) + ":" + raw_id``, or the bare ``raw_id`` when the
    title normalizes to nothing.
    """
    if context_provider_id:
        context_key = strip_variant_suffixes(normalize(context_provider_id))
        if context_key:
            return context_key

    provider_key = strip_variant_suffixes(normalize(result.provider_id))
    if provider_key:
        return provider_key

    name_key = normalize_provider_name(result.provider_display_name)
    if name_key:
        return name_key

    title_key = normalize(result.title)
    return f"{title_key}:{result.raw_id}" if title_key else result.raw_id


def _compare(current: int, candidate: int) -> int:
    return (candidate > current) - (candidate < current)


def prefer_raw(current: RawResult, candidate: RawResult) -> bool:
    """Return ``True`` if *candidate* should replace *current* (unprobed)."""
    verdict = _compare(current.episode_count, candidate.episode_count)
    if verdict:
        return verdict > 0

    verdict = _compare(
        label_score(current.provider_display_name),
        label_score(candidate.provider_display_name),
    )
    if verdict:
        return verdict > 0

    # Shorter names tend to be the undecorated, authoritative listing.
    current_len = len(current.provider_display_name.strip())
    candidate_len = len(candidate.provider_display_name.strip())
    return bool(candidate_len) and (not current_len or candidate_len < current_len)


def prefer_enriched(current: EnrichedResult, candidate: EnrichedResult) -> bool:
    """Return ``True`` if *candidate* should replace *current* (probed)."""
    verdict = _compare(current.episode_count, candidate.episode_count)
    if verdict:
        return verdict > 0

    verdict = _compare(
        resolution_score(current.resolution_label),
        resolution_score(candidate.resolution_label),
    )
    if verdict:
        return verdict > 0

    return label_score(candidate.provider_display_name) > label_score(
        current.provider_display_name
    )


def merge_by_dedupe_key(items: Iterable[EnrichedResult]) -> list[EnrichedResult]:
    """Fold *items* by ``dedupe_key``, keeping first-seen key order."""
    merged: dict[str, EnrichedResult] = {}
    for item in items:
        existing = merged.get(item.dedupe_key)
        if existing is None or prefer_enriched(existing, item):
            merged[item.dedupe_key] = item
    return list(merged.values())
