"""Tests for label/resolution scoring, dedupe keys and tie-break rules."""

from __future__ import annotations

import pytest
from fakes import make_enriched, make_raw

from sourcerr.application.sources.ranking import (
    build_dedupe_key,
    label_score,
    merge_by_dedupe_key,
    prefer_enriched,
    prefer_raw,
    resolution_score,
)
from sourcerr.domain.entities.sources import RawResult

# ---------------------------------------------------------------------------
# label_score / resolution_score
# ---------------------------------------------------------------------------


class TestLabelScore:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            (None, 0),
            ("", 0),
            ("甲资源", 0),
            ("甲资源无广告", 4),
            ("甲资源蓝光", 3),
            ("甲资源超清", 2),
            ("甲资源高清", 1),
            ("甲资源备用", -3),
            ("甲资源线路2", -2),
            ("ProviderX LINE 2", -2),
            ("甲资源主线", -1),
        ],
    )
    def test_single_signal(self, name: str | None, expected: int) -> None:
        assert label_score(name) == expected

    def test_signals_are_additive(self) -> None:
        assert label_score("XX无广告蓝光") == 7
        assert label_score("XX备用线路2") == -5


class TestResolutionScore:
    @pytest.mark.parametrize(
        ("label", "expected"),
        [
            (None, 0),
            ("", 0),
            ("4K", 6),
            ("2160p", 6),
            ("2K", 5),
            ("1440p", 5),
            ("1080p", 4),
            ("720p", 3),
            ("540p", 2),
            ("480p", 1),
            ("360p", 0),
            ("蓝光", 4),
            ("超清", 3),
            ("高清", 2),
            ("标清", 1),
            ("unknown", 0),
        ],
    )
    def test_mapping(self, label: str | None, expected: int) -> None:
        assert resolution_score(label) == expected


# ---------------------------------------------------------------------------
# build_dedupe_key
# ---------------------------------------------------------------------------


class TestBuildDedupeKey:
    def test_context_provider_wins(self) -> None:
        raw = make_raw("other", name="Other")
        assert build_dedupe_key(raw, "甲资源 线路1") == "甲资源"

    def test_own_provider_id(self) -> None:
        assert build_dedupe_key(make_raw("ProviderX-Line2")) == "providerx"

    def test_display_name_when_id_blank(self) -> None:
        raw = RawResult(
            provider_id="",
            provider_display_name="甲资源 蓝光",
            title="X",
            episodes=("u",),
        )
        assert build_dedupe_key(raw) == "甲资源"

    def test_title_and_raw_id_fallback_never_empty(self) -> None:
        raw = RawResult(
            provider_id="---",
            provider_display_name="",
            title="Some Show",
            episodes=("u",),
            raw_id="77",
        )
        assert build_dedupe_key(raw) == "someshow:77"

    def test_bare_raw_id_when_title_is_blank(self) -> None:
        raw = RawResult(
            provider_id="---",
            provider_display_name="",
            title=" ·· ",
            episodes=("u",),
            raw_id="77",
        )
        assert build_dedupe_key(raw) == "77"

    def test_decorated_ids_collapse(self) -> None:
        assert build_dedupe_key(make_raw("甲资源线路1")) == build_dedupe_key(
            make_raw("甲资源")
        )


# ---------------------------------------------------------------------------
# prefer_raw / prefer_enriched
# ---------------------------------------------------------------------------


class TestPreferRaw:
    def test_more_episodes_wins(self) -> None:
        short = make_raw("a", name="甲资源无广告", episodes=5)
        long = make_raw("a", name="甲资源备用", episodes=6)
        assert prefer_raw(short, long) is True
        assert prefer_raw(long, short) is False

    def test_label_score_breaks_episode_tie_in_any_order(self) -> None:
        plain = make_raw("a", name="甲资源线路1")
        bluray = make_raw("a", name="甲资源蓝光线路1")
        assert prefer_raw(plain, bluray) is True
        assert prefer_raw(bluray, plain) is False

    def test_shorter_name_breaks_full_tie(self) -> None:
        long = make_raw("a", name="甲资源官方")
        short = make_raw("a", name="甲资源")
        assert prefer_raw(long, short) is True
        assert prefer_raw(short, long) is False

    def test_identical_candidate_does_not_replace(self) -> None:
        raw = make_raw("a", name="甲资源")
        assert prefer_raw(raw, raw) is False

    def test_blank_name_never_wins_on_length(self) -> None:
        named = make_raw("a", name="甲资源")
        blank = make_raw("a", name="")
        assert prefer_raw(named, blank) is False


class TestPreferEnriched:
    def test_more_episodes_beats_resolution(self) -> None:
        hd = make_enriched("a", episodes=5, resolution="1080p")
        sd = make_enriched("a", episodes=6, resolution="480p")
        assert prefer_enriched(hd, sd) is True

    def test_resolution_breaks_episode_tie(self) -> None:
        sd = make_enriched("a", resolution="720p")
        hd = make_enriched("a", resolution="1080p")
        assert prefer_enriched(sd, hd) is True
        assert prefer_enriched(hd, sd) is False

    def test_label_is_final_tie_break(self) -> None:
        plain = make_enriched("a", name="甲资源线路1", resolution="1080p")
        clean = make_enriched("a", name="甲资源", resolution="1080p")
        assert prefer_enriched(plain, clean) is True
        assert prefer_enriched(clean, plain) is False

    def test_no_length_tie_break(self) -> None:
        long = make_enriched("a", name="甲资源官方")
        short = make_enriched("a", name="甲资源")
        assert prefer_enriched(long, short) is False


class TestMergeByDedupeKey:
    def test_keeps_first_seen_key_order(self) -> None:
        a = make_enriched("alpha")
        b = make_enriched("bravo")
        better_a = make_enriched("alpha", resolution="1080p")
        merged = merge_by_dedupe_key([a, b, better_a])
        assert [m.dedupe_key for m in merged] == ["alpha", "bravo"]
        assert merged[0] is better_a

    def test_existing_kept_when_not_strictly_better(self) -> None:
        a = make_enriched("alpha", resolution="1080p")
        same = make_enriched("alpha", resolution="1080p")
        merged = merge_by_dedupe_key([a, same])
        assert merged == [a]
        assert merged[0] is a
