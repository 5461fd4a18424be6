"""Tests for the zero-impact MetricsCollector."""

from __future__ import annotations

from sourcerr.infrastructure.metrics import MetricsCollector, ProbeStats, ProviderStats


class TestProviderStats:
    def test_default_values(self) -> None:
        stats = ProviderStats()
        assert stats.searches == 0
        assert stats.successes == 0
        assert stats.failures == 0
        assert stats.total_results == 0
        assert stats.total_duration_ns == 0

    def test_snapshot_no_searches(self) -> None:
        snap = ProviderStats().snapshot()
        assert snap["searches"] == 0
        assert snap["avg_duration_ms"] == 0.0

    def test_snapshot_with_data(self) -> None:
        stats = ProviderStats(
            searches=4,
            successes=3,
            failures=1,
            total_results=12,
            total_duration_ns=2_000_000_000,  # 2s total
        )
        snap = stats.snapshot()
        assert snap["successes"] == 3
        assert snap["failures"] == 1
        assert snap["total_results"] == 12
        assert snap["avg_duration_ms"] == 500.0  # 2000ms / 4


class TestProbeStats:
    def test_snapshot_no_probes(self) -> None:
        snap = ProbeStats().snapshot()
        assert snap == {
            "probes": 0,
            "labelled": 0,
            "unknown": 0,
            "avg_duration_ms": 0.0,
        }

    def test_snapshot_with_data(self) -> None:
        stats = ProbeStats(
            probes=4, labelled=3, unknown=1, total_duration_ns=400_000_000
        )
        snap = stats.snapshot()
        assert snap["labelled"] == 3
        assert snap["unknown"] == 1
        assert snap["avg_duration_ms"] == 100.0


class TestMetricsCollector:
    def test_record_provider_search_success(self) -> None:
        m = MetricsCollector()
        m.record_provider_search("bfzy", 100_000_000, 3, success=True)

        providers = m.snapshot()["providers"]
        assert providers["bfzy"]["searches"] == 1
        assert providers["bfzy"]["successes"] == 1
        assert providers["bfzy"]["failures"] == 0
        assert providers["bfzy"]["total_results"] == 3

    def test_failure_does_not_count_results(self) -> None:
        m = MetricsCollector()
        m.record_provider_search("bfzy", 50_000_000, 7, success=False)

        stats = m.snapshot()["providers"]["bfzy"]
        assert stats["failures"] == 1
        assert stats["total_results"] == 0

    def test_record_probe(self) -> None:
        m = MetricsCollector()
        m.record_probe(duration_ns=10_000_000, labelled=True)
        m.record_probe(duration_ns=30_000_000, labelled=False)

        probe = m.snapshot()["probe"]
        assert probe["probes"] == 2
        assert probe["labelled"] == 1
        assert probe["unknown"] == 1
        assert probe["avg_duration_ms"] == 20.0

    def test_snapshot_includes_uptime(self) -> None:
        snap = MetricsCollector().snapshot()
        assert snap["uptime_seconds"] >= 0

    def test_providers_sorted_alphabetically(self) -> None:
        m = MetricsCollector()
        for name in ("zy", "ab", "mn"):
            m.record_provider_search(name, 1, 1, success=True)
        assert list(m.snapshot()["providers"]) == ["ab", "mn", "zy"]
