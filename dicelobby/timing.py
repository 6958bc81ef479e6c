"""Latency tracking for tick and broadcast stages."""

import logging
import statistics
import time
from collections import deque
from contextlib import asynccontextmanager, contextmanager
from typing import Optional

logger = logging.getLogger(__name__)


class LatencyTracker:
    """Rolling per-stage latency statistics.

    A stage slower than ``slow_threshold_ms`` is logged on its own; a
    summary of every stage is logged at most once per ``report_interval``.
    """

    def __init__(self, window_size: int = 600, slow_threshold_ms: float = 50.0, report_interval: float = 60.0):
        self.window_size = window_size
        self.slow_threshold_ms = slow_threshold_ms
        self.report_interval = report_interval
        self._metrics: dict[str, deque[float]] = {}
        self._last_report: float = time.monotonic()

    def record(self, stage: str, duration_ms: float, **metadata):
        """Add one sample; ``metadata`` is only echoed in the SLOW warning."""
        if stage not in self._metrics:
            self._metrics[stage] = deque(maxlen=self.window_size)
        self._metrics[stage].append(duration_ms)

        if duration_ms > self.slow_threshold_ms:
            meta_str = f" {metadata}" if metadata else ""
            logger.warning(f"SLOW: {stage} took {duration_ms:.1f}ms{meta_str}")

        now = time.monotonic()
        if now - self._last_report > self.report_interval:
            self._log_summary()
            self._last_report = now

    def stages(self) -> list[str]:
        return list(self._metrics)

    def get_stats(self, stage: str) -> dict:
        """Summary of the samples still in the window, or {} for an unseen stage."""
        data = list(self._metrics.get(stage, ()))
        if not data:
            return {}
        ordered = sorted(data)
        return {
            "count": len(data),
            "mean_ms": round(statistics.mean(data), 2),
            "median_ms": round(statistics.median(data), 2),
            "p95_ms": round(ordered[int(len(ordered) * 0.95)] if len(ordered) >= 20 else ordered[-1], 2),
            "max_ms": round(ordered[-1], 2),
            "min_ms": round(ordered[0], 2),
        }

    def get_all_stats(self) -> dict:
        return {stage: self.get_stats(stage) for stage in self._metrics}

    def reset(self) -> None:
        self._metrics.clear()

    def _log_summary(self):
        for stage in self._metrics:
            stats = self.get_stats(stage)
            if stats:
                logger.info(
                    f"TIMING [{stage}]: mean={stats['mean_ms']:.1f}ms, "
                    f"p95={stats['p95_ms']:.1f}ms, n={stats['count']}"
                )


# Shared by every table runtime in the process and read by /api/timing
_tracker: Optional[LatencyTracker] = None


def get_tracker() -> LatencyTracker:
    global _tracker
    if _tracker is None:
        _tracker = LatencyTracker()
    return _tracker


def _record_since(stage: str, start: float, metadata: dict) -> None:
    get_tracker().record(stage, (time.perf_counter() - start) * 1000, **metadata)


@contextmanager
def timed_sync(stage: str, **metadata):
    """Time a block that holds the table lock, such as one physics tick."""
    start = time.perf_counter()
    try:
        yield
    finally:
        _record_since(stage, start, metadata)


@asynccontextmanager
async def timed_async(stage: str, **metadata):
    """Time an awaited block, such as fanning one message out to observers.

    The sample is recorded even when the block raises.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        _record_since(stage, start, metadata)
