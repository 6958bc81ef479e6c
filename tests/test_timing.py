"""Tests for latency tracking."""

import asyncio
import logging

from dicelobby.timing import LatencyTracker, get_tracker, timed_async, timed_sync


class TestLatencyTracker:
    """Test LatencyTracker."""

    def test_empty_stage(self):
        """Test stats for an unknown stage."""
        assert LatencyTracker().get_stats("tick") == {}

    def test_stats(self):
        """Test basic statistics."""
        tracker = LatencyTracker()
        for value in (1.0, 2.0, 3.0, 4.0):
            tracker.record("tick", value)
        stats = tracker.get_stats("tick")
        assert stats["count"] == 4
        assert stats["mean_ms"] == 2.5
        assert stats["min_ms"] == 1.0
        assert stats["max_ms"] == 4.0
        assert tracker.stages() == ["tick"]

    def test_window(self):
        """Test old samples fall out of the window."""
        tracker = LatencyTracker(window_size=3)
        for value in range(10):
            tracker.record("tick", float(value))
        assert tracker.get_stats("tick")["count"] == 3
        assert tracker.get_stats("tick")["min_ms"] == 7.0

    def test_slow_warning(self, caplog):
        """Test a slow stage is logged."""
        tracker = LatencyTracker(slow_threshold_ms=10)
        with caplog.at_level(logging.WARNING, logger="dicelobby.timing"):
            tracker.record("broadcast", 5.0)
            tracker.record("broadcast", 25.0)
        assert len(caplog.records) == 1
        assert "broadcast" in caplog.records[0].getMessage()

    def test_reset(self):
        """Test reset clears every stage."""
        tracker = LatencyTracker()
        tracker.record("tick", 1.0)
        tracker.reset()
        assert tracker.get_all_stats() == {}


class TestTimedContexts:
    """Test the timing context managers."""

    def setup_method(self):
        get_tracker().reset()

    def test_timed_sync(self):
        """Test a synchronous block is recorded."""
        with timed_sync("unit-sync"):
            pass
        assert get_tracker().get_stats("unit-sync")["count"] == 1

    def test_timed_async(self):
        """Test an async block is recorded."""
        async def work():
            async with timed_async("unit-async"):
                await asyncio.sleep(0)

        asyncio.run(work())
        assert get_tracker().get_stats("unit-async")["count"] == 1

    def test_recorded_on_error(self):
        """Test a failing block is still timed."""
        try:
            with timed_sync("unit-error"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert get_tracker().get_stats("unit-error")["count"] == 1
