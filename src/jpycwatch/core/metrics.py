"""In-memory performance metrics for upstream calls and aggregation phases."""

import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, TypeVar

from jpycwatch.constants.resilience import MAX_METRIC_ENTRIES

T = TypeVar("T")


@dataclass
class MetricEntry:
    """One measured call. Durations are in milliseconds."""

    name: str
    duration_ms: float
    status: Literal["success", "error"]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class MetricStats:
    """Aggregated timings of one operation name."""

    name: str
    count: int = 0
    avg_duration_ms: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    success_rate: float = 0.0


class PerformanceMetrics:
    """Records call durations and outcomes.

    Keeps the latest ``max_entries`` measurements.

    Example:
        metrics = PerformanceMetrics()
        supply = await metrics.measure("fetch_supplies", fetch_supplies)
        print(metrics.summary_report())
    """

    def __init__(self, max_entries: int = MAX_METRIC_ENTRIES) -> None:
        self._entries: deque[MetricEntry] = deque(maxlen=max_entries)

    async def measure(
        self,
        name: str,
        fn: Callable[[], Awaitable[T]],
        metadata: dict[str, Any] | None = None,
    ) -> T:
        """Await ``fn`` and record its duration; errors are recorded and re-raised."""
        start = time.perf_counter()
        try:
            result = await fn()
        except Exception as e:
            self.record(
                name,
                (time.perf_counter() - start) * 1000,
                "error",
                error=str(e),
                metadata=metadata,
            )
            raise
        self.record(name, (time.perf_counter() - start) * 1000, "success", metadata=metadata)
        return result

    def record(
        self,
        name: str,
        duration_ms: float,
        status: Literal["success", "error"],
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._entries.append(
            MetricEntry(
                name=name,
                duration_ms=duration_ms,
                status=status,
                error=error,
                metadata=metadata,
            )
        )

    def get_metrics(self, name: str | None = None) -> list[MetricEntry]:
        if name is None:
            return list(self._entries)
        return [entry for entry in self._entries if entry.name == name]

    def get_stats(self, name: str) -> MetricStats:
        entries = self.get_metrics(name)
        if not entries:
            return MetricStats(name=name)

        durations = [entry.duration_ms for entry in entries]
        successes = sum(1 for entry in entries if entry.status == "success")
        return MetricStats(
            name=name,
            count=len(entries),
            avg_duration_ms=sum(durations) / len(durations),
            min_duration_ms=min(durations),
            max_duration_ms=max(durations),
            success_rate=successes / len(entries) * 100,
        )

    def get_all_stats(self) -> list[MetricStats]:
        names = dict.fromkeys(entry.name for entry in self._entries)
        return [self.get_stats(name) for name in names]

    def get_percentile(self, name: str, percentile: float) -> float:
        """Nearest-rank percentile (0-100) of the durations of ``name``."""
        durations = sorted(entry.duration_ms for entry in self.get_metrics(name))
        if not durations:
            return 0.0
        index = math.ceil(percentile / 100 * len(durations)) - 1
        return durations[max(0, index)]

    def get_recent(self, limit: int = 10) -> list[MetricEntry]:
        """Most recent entries first."""
        return sorted(self._entries, key=lambda entry: entry.timestamp, reverse=True)[:limit]

    def get_by_metadata(self, key: str, value: Any) -> list[MetricEntry]:
        return [
            entry
            for entry in self._entries
            if entry.metadata is not None and entry.metadata.get(key) == value
        ]

    def summary_report(self) -> str:
        all_stats = self.get_all_stats()
        if not all_stats:
            return "No metrics recorded."

        lines = ["Performance Metrics Summary", "=" * 50]
        for stats in all_stats:
            lines.extend(
                [
                    "",
                    f"Operation: {stats.name}",
                    f"  Count: {stats.count}",
                    f"  Avg Duration: {stats.avg_duration_ms:.2f}ms",
                    f"  Min Duration: {stats.min_duration_ms:.2f}ms",
                    f"  Max Duration: {stats.max_duration_ms:.2f}ms",
                    f"  Success Rate: {stats.success_rate:.2f}%",
                ]
            )
        return "\n".join(lines)

    def clear(self, name: str | None = None) -> None:
        if name is None:
            self._entries.clear()
            return
        kept = [entry for entry in self._entries if entry.name != name]
        self._entries.clear()
        self._entries.extend(kept)
