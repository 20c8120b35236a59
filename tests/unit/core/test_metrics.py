"""Tests for the performance metrics recorder."""

import pytest

from jpycwatch.core.metrics import PerformanceMetrics


class TestMeasure:
    """Tests for PerformanceMetrics.measure()."""

    @pytest.mark.asyncio
    async def test_records_success(self) -> None:
        metrics = PerformanceMetrics()

        async def op() -> int:
            return 7

        result = await metrics.measure("op", op, metadata={"chain": "Ethereum"})

        assert result == 7
        entries = metrics.get_metrics("op")
        assert len(entries) == 1
        assert entries[0].status == "success"
        assert entries[0].duration_ms >= 0
        assert metrics.get_by_metadata("chain", "Ethereum") == entries

    @pytest.mark.asyncio
    async def test_records_and_reraises_errors(self) -> None:
        metrics = PerformanceMetrics()

        async def op() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await metrics.measure("op", op)

        entry = metrics.get_metrics("op")[0]
        assert entry.status == "error"
        assert entry.error == "boom"


class TestStats:
    """Tests for statistics and reports."""

    @pytest.fixture
    def metrics(self) -> PerformanceMetrics:
        metrics = PerformanceMetrics()
        for duration in (10.0, 20.0, 30.0, 40.0):
            metrics.record("rpc", duration, "success")
        metrics.record("rpc", 100.0, "error", error="timeout")
        metrics.record("explorer", 5.0, "success")
        return metrics

    def test_get_stats(self, metrics: PerformanceMetrics) -> None:
        stats = metrics.get_stats("rpc")

        assert stats.count == 5
        assert stats.avg_duration_ms == 40.0
        assert stats.min_duration_ms == 10.0
        assert stats.max_duration_ms == 100.0
        assert stats.success_rate == 80.0

    def test_stats_of_unknown_name(self, metrics: PerformanceMetrics) -> None:
        assert metrics.get_stats("missing").count == 0

    def test_percentile_nearest_rank(self, metrics: PerformanceMetrics) -> None:
        assert metrics.get_percentile("rpc", 50) == 30.0
        assert metrics.get_percentile("rpc", 100) == 100.0
        assert metrics.get_percentile("rpc", 0) == 10.0
        assert metrics.get_percentile("missing", 95) == 0.0

    def test_summary_report_lists_operations(self, metrics: PerformanceMetrics) -> None:
        report = metrics.summary_report()

        assert "Operation: rpc" in report
        assert "Operation: explorer" in report
        assert PerformanceMetrics().summary_report() == "No metrics recorded."

    def test_clear_by_name_and_all(self, metrics: PerformanceMetrics) -> None:
        metrics.clear("rpc")
        assert [s.name for s in metrics.get_all_stats()] == ["explorer"]

        metrics.clear()
        assert metrics.get_metrics() == []

    def test_capacity(self) -> None:
        metrics = PerformanceMetrics(max_entries=2)
        for duration in (1.0, 2.0, 3.0):
            metrics.record("op", duration, "success")

        assert [e.duration_ms for e in metrics.get_metrics()] == [2.0, 3.0]
        assert len(metrics.get_recent(limit=1)) == 1
