"""Pick a replacement play source when the active one fails mid-playback."""

from __future__ import annotations

import structlog

from sourcerr.application.sources.ranking import resolution_score
from sourcerr.domain.entities.sources import AggregateState, EnrichedResult

log = structlog.get_logger(__name__)


class PlaybackFailoverSelector:
    """Read-only selector over an aggregate.

    Callers mark the failed provider before asking again, otherwise the
    same replacement keeps coming back.
    """

    def pick_next(
        self,
        aggregate: AggregateState,
        current_provider_id: str,
        episode_index: int,
    ) -> EnrichedResult | None:
        """Best untried source that still has *episode_index*.

        Ties on resolution keep aggregate order (the sort is stable).
        """
        if episode_index < 0:
            return None

        candidates = [
            item
            for item in aggregate.results
            if item.provider_id != current_provider_id
            and item.provider_id not in aggregate.failed_provider_ids
            and episode_index < item.episode_count
        ]
        if not candidates:
            log.info(
                "failover_exhausted",
                current_provider=current_provider_id,
                episode_index=episode_index,
                failed=sorted(aggregate.failed_provider_ids),
            )
            return None

        candidates.sort(
            key=lambda item: resolution_score(item.resolution_label), reverse=True
        )
        chosen = candidates[0]
        log.info(
            "failover_selected",
            current_provider=current_provider_id,
            next_provider=chosen.provider_id,
            resolution=chosen.resolution_label,
            episode_index=episode_index,
        )
        return chosen
