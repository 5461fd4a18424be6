"""Tests for play source domain entities."""

from __future__ import annotations

import dataclasses

import pytest
from fakes import make_enriched, make_raw

from sourcerr.domain.entities.sources import (
    AggregateState,
    CoordinatorState,
    RawResult,
    Session,
)
from sourcerr.domain.exceptions import (
    NoProvidersEnabledError,
    NoSourceFoundError,
    ProviderRequestError,
    SourceAggregationError,
)


class TestRawResult:
    def test_usable_only_with_episodes(self) -> None:
        assert make_raw("bfzy").is_usable() is True
        assert make_raw("bfzy", episodes=0).is_usable() is False

    def test_is_immutable(self) -> None:
        raw = make_raw("bfzy")
        with pytest.raises(dataclasses.FrozenInstanceError):
            raw.title = "Y"  # type: ignore[misc]

    def test_kind_tag(self) -> None:
        raw = RawResult(provider_id="a", provider_display_name="A", title="X")
        assert raw.kind == "raw"
        assert raw.episode_count == 0


class TestEnrichedResult:
    def test_delegates_to_raw(self) -> None:
        enriched = make_enriched("bfzy", name="暴风资源", episodes=4, raw_id="9")
        assert enriched.provider_id == "bfzy"
        assert enriched.provider_display_name == "暴风资源"
        assert enriched.episode_count == 4
        assert enriched.raw_id == "9"
        assert enriched.kind == "enriched"

    def test_with_resolution_returns_copy(self) -> None:
        enriched = make_enriched("bfzy")
        labelled = enriched.with_resolution("720p")
        assert labelled.resolution_label == "720p"
        assert enriched.resolution_label is None
        assert labelled.dedupe_key == enriched.dedupe_key


class TestAggregateState:
    def test_empty_by_default(self) -> None:
        state = AggregateState()
        assert state.is_empty
        assert state.active_result is None
        assert state.all_providers_settled is False

    def test_find_by_dedupe_key(self) -> None:
        a, b = make_enriched("alpha"), make_enriched("bravo")
        state = AggregateState(results=(a, b))
        assert state.find("bravo") is b
        assert state.find("charlie") is None

    def test_with_failed_only_grows(self) -> None:
        state = AggregateState().with_failed("a").with_failed("b")
        assert state.failed_provider_ids == {"a", "b"}
        assert state.with_failed("a") is state


class TestSession:
    def test_cancel_sets_signal(self) -> None:
        session = Session(token=1, cache_key="x::::", query="X")
        assert session.is_cancelled is False
        session.cancel()
        assert session.is_cancelled is True
        assert session.cancelled.is_set()


class TestCoordinatorState:
    def test_shortcuts_read_the_aggregate(self) -> None:
        a = make_enriched("alpha")
        state = CoordinatorState(aggregate=AggregateState(results=(a,), active_result=a))
        assert state.results == (a,)
        assert state.active_result is a


class TestExceptions:
    def test_aggregation_errors_carry_user_message(self) -> None:
        assert str(NoSourceFoundError()) == NoSourceFoundError.message
        assert str(NoProvidersEnabledError()) == NoProvidersEnabledError.message
        assert isinstance(NoSourceFoundError(), SourceAggregationError)

    def test_provider_error_default_message(self) -> None:
        err = ProviderRequestError("bfzy")
        assert err.provider_id == "bfzy"
        assert "bfzy" in str(err)
