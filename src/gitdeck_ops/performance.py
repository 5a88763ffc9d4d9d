"""Operation timing, statistics and tuning recommendations.

Samples are kept per operation name in a bounded ring; the oldest sample is
dropped first. Targets only drive warnings and recommendations, they never
abort an operation.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterator, List, Optional

from gitdeck.config_schema import PerformanceConfig

from .observability import log_debug, log_info, log_warning


# Millisecond ceilings per named operation
TARGETS: Dict[str, float] = {
    "quickpick-open": 150,
    "branch-fetch": 100,
    "repository-refresh": 200,
    "cache-operation": 50,
}

RECENT_SAMPLES = 10


@dataclass(frozen=True)
class PerformanceSample:
    name: str
    duration_ms: float
    timestamp: float
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class OperationStats:
    name: str
    count: int
    avg_ms: float
    min_ms: float
    max_ms: float
    slow_count: int
    recent: List[PerformanceSample] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "count": self.count,
            "avg_ms": round(self.avg_ms, 2),
            "min_ms": round(self.min_ms, 2),
            "max_ms": round(self.max_ms, 2),
            "slow_count": self.slow_count,
        }


class Timer:
    """Returned by ``PerformanceMonitor.start_timer``."""

    def __init__(self, monitor: "PerformanceMonitor", name: str):
        self._monitor = monitor
        self._name = name
        self._start = time.perf_counter()

    def end(self, metadata: Optional[Dict[str, Any]] = None) -> float:
        """Record the elapsed time and return it in milliseconds."""
        duration_ms = (time.perf_counter() - self._start) * 1000.0
        self._monitor.record_operation(self._name, duration_ms, metadata)
        return duration_ms


class PerformanceMonitor:
    def __init__(
        self,
        max_history: int = 100,
        report_interval: float = 300.0,
        slow_ratio: float = 0.2,
        avg_factor: float = 1.5,
        targets: Optional[Dict[str, float]] = None,
    ):
        self.max_history = max_history
        self.report_interval = report_interval
        self.slow_ratio = slow_ratio
        self.avg_factor = avg_factor
        self.targets = dict(TARGETS if targets is None else targets)
        self._samples: Dict[str, Deque[PerformanceSample]] = {}
        self._reporter: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: PerformanceConfig) -> "PerformanceMonitor":
        return cls(
            max_history=config.max_history,
            report_interval=config.report_interval_seconds,
            slow_ratio=config.recommendation_slow_ratio,
            avg_factor=config.recommendation_avg_factor,
        )

    def start_timer(self, name: str) -> Timer:
        return Timer(self, name)

    def record_operation(
        self,
        name: str,
        duration_ms: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        samples = self._samples.get(name)
        if samples is None:
            samples = self._samples[name] = deque(maxlen=self.max_history)
        samples.append(PerformanceSample(name, duration_ms, time.time(), metadata))

        target = self.targets.get(name)
        if target is not None and duration_ms > target:
            log_warning(
                f"Slow {name}: {duration_ms:.1f}ms (target: {target:g}ms)",
                **(metadata or {}),
            )

    @contextmanager
    def track(self, name: str, **metadata: Any) -> Iterator[Dict[str, Any]]:
        """Time a block; entries added to the yielded dict become metadata.

        The sample is recorded even when the block raises. A failure inside the
        monitor itself is logged and never reaches the caller.
        """
        extra: Dict[str, Any] = dict(metadata)
        start = time.perf_counter()
        try:
            yield extra
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            try:
                self.record_operation(name, duration_ms, extra or None)
            except Exception as e:
                log_debug("Performance sample dropped", name=name, error=str(e))

    def get_stats(self, name: str) -> Optional[OperationStats]:
        samples = self._samples.get(name)
        if not samples:
            return None
        durations = [s.duration_ms for s in samples]
        target = self.targets.get(name)
        return OperationStats(
            name=name,
            count=len(durations),
            avg_ms=sum(durations) / len(durations),
            min_ms=min(durations),
            max_ms=max(durations),
            slow_count=sum(1 for d in durations if target is not None and d > target),
            recent=list(samples)[-RECENT_SAMPLES:],
        )

    def get_all_stats(self) -> List[OperationStats]:
        """Stats for every operation, most frequent first."""
        stats = [s for s in (self.get_stats(n) for n in list(self._samples)) if s is not None]
        return sorted(stats, key=lambda s: s.count, reverse=True)

    def clear_data(self, name: Optional[str] = None) -> None:
        if name is None:
            self._samples.clear()
        else:
            self._samples.pop(name, None)

    def get_recommendations(self) -> List[str]:
        recommendations: List[str] = []
        for stats in self.get_all_stats():
            target = self.targets.get(stats.name)
            if target is None:
                continue
            slow_pct = stats.slow_count / stats.count * 100
            if slow_pct > self.slow_ratio * 100:
                recommendations.append(
                    f"{stats.name}: {slow_pct:.1f}% of operations exceed {target:g}ms target "
                    f"(avg: {stats.avg_ms:.1f}ms)"
                )
            if stats.avg_ms > target * self.avg_factor:
                recommendations.append(
                    f"{stats.name}: Average duration ({stats.avg_ms:.1f}ms) significantly "
                    f"exceeds target ({target:g}ms)"
                )
        return recommendations

    def log_report(self) -> None:
        all_stats = self.get_all_stats()
        if not all_stats:
            return
        log_info(
            "Performance report",
            operations=[s.as_dict() for s in all_stats],
            recommendations=self.get_recommendations(),
        )

    async def _report_loop(self) -> None:
        while True:
            await asyncio.sleep(self.report_interval)
            self.log_report()

    def start(self) -> None:
        """Schedule the periodic report on the running event loop."""
        if self._reporter is not None and not self._reporter.done():
            return
        self._reporter = asyncio.get_running_loop().create_task(self._report_loop())

    def shutdown(self) -> None:
        reporter, self._reporter = self._reporter, None
        if reporter is not None and not reporter.done():
            try:
                reporter.cancel()
            except RuntimeError:
                log_debug("Performance reporter outlived its event loop")
        self._samples.clear()
