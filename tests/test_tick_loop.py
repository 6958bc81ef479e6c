"""Tests for the tick loop and the table runtime."""

import asyncio
import random

import pytest

from dicelobby.game.models import RollSettled, SnapshotReady, TableState, ThrowAccepted, TickElapsed
from dicelobby.game.runtime import create_dice_table
from dicelobby.game.tick_loop import TickLoop

from conftest import fast_config


async def settle(table) -> None:
    await asyncio.wait_for(table.wait_until_idle(), timeout=60)


class TestTickLoop:
    """Test the fixed-rate driver."""

    def test_runs_until_told_to_stop(self):
        """Test the loop ticks until the callback returns False."""
        calls = []

        async def tick(real_dt):
            calls.append(real_dt)
            return len(calls) < 3

        async def scenario():
            loop = TickLoop(0.001, tick)
            assert loop.start() is True
            await loop.wait()
            return loop

        loop = asyncio.run(scenario())
        assert len(calls) == 3
        assert all(dt >= 0 for dt in calls)
        assert not loop.running

    def test_start_is_idempotent(self):
        """Test starting a running loop does nothing."""
        async def tick(real_dt):
            await asyncio.sleep(0)
            return True

        async def scenario():
            loop = TickLoop(0.001, tick)
            first = loop.start()
            second = loop.start()
            await loop.stop()
            return first, second, loop.running

        assert asyncio.run(scenario()) == (True, False, False)

    def test_stop_cancels(self):
        """Test stop ends a loop that would otherwise run forever."""
        count = 0

        async def tick(real_dt):
            nonlocal count
            count += 1
            return True

        async def scenario():
            loop = TickLoop(0.001, tick)
            loop.start()
            await asyncio.sleep(0.02)
            await loop.stop()
            seen = count
            await asyncio.sleep(0.01)
            return seen

        seen = asyncio.run(scenario())
        assert seen > 0
        assert count == seen

    def test_failing_tick_stops_loop(self, caplog):
        """Test an exception inside a tick is logged and ends the loop."""
        async def tick(real_dt):
            raise RuntimeError("boom")

        async def scenario():
            loop = TickLoop(0.001, tick, name="broken")
            loop.start()
            await loop.wait()
            return loop.running

        assert asyncio.run(scenario()) is False
        assert "Tick failed" in caplog.text

    def test_restart_after_stop(self):
        """Test a finished loop can be started again."""
        async def tick(real_dt):
            return False

        async def scenario():
            loop = TickLoop(0.001, tick)
            loop.start()
            await loop.wait()
            return loop.start()

        assert asyncio.run(scenario()) is True

    def test_negative_interval(self):
        """Test a negative interval is refused."""
        async def tick(real_dt):
            return False

        with pytest.raises(ValueError):
            TickLoop(-1, tick)


class TestDiceTable:
    """Test the runtime that serializes throws and ticks."""

    def make_table(self, **roll_overrides):
        self.published = []

        async def publish(output):
            self.published.append(output)

        return create_dice_table(fast_config(**roll_overrides), publish, rng=random.Random(3))

    def test_double_throw_one_result(self):
        """Test two quick throws give one roll and one result."""
        table = self.make_table()

        async def scenario():
            first = await table.throw("alice")
            second = await table.throw("bob")
            await settle(table)
            return first, second

        assert asyncio.run(scenario()) == (True, False)
        results = [o for o in self.published if isinstance(o, RollSettled)]
        accepted = [o for o in self.published if isinstance(o, ThrowAccepted)]
        assert len(results) == 1
        assert len(accepted) == 1
        assert len(results[0].result.individual) == 5
        assert 5 <= results[0].result.total <= 30
        assert results[0].result.forced is False
        assert table.state is TableState.IDLE
        assert not table.loop_running

    def test_result_is_last_output(self):
        """Test the loop stops on the tick that settles."""
        table = self.make_table()

        async def scenario():
            await table.throw()
            await settle(table)

        asyncio.run(scenario())
        assert isinstance(self.published[-1], RollSettled)
        assert isinstance(self.published[-2], SnapshotReady)

    def test_snapshots_strictly_advance(self):
        """Test published snapshots move forward in simulated time."""
        table = self.make_table()

        async def scenario():
            await table.throw()
            await settle(table)

        asyncio.run(scenario())
        times = [o.snapshot.time for o in self.published if isinstance(o, SnapshotReady)]
        assert len(times) > 1
        assert all(b > a for a, b in zip(times, times[1:]))

    def test_concurrent_throws(self):
        """Test throws racing each other still start one roll."""
        table = self.make_table()

        async def scenario():
            outcomes = await asyncio.gather(*(table.throw(f"c{i}") for i in range(10)))
            await settle(table)
            return outcomes

        outcomes = asyncio.run(scenario())
        assert outcomes.count(True) == 1
        assert len([o for o in self.published if isinstance(o, RollSettled)]) == 1

    def test_shutdown_stops_ticks(self):
        """Test shutdown cancels the loop mid-roll."""
        table = self.make_table(max_roll_seconds=None)

        async def scenario():
            await table.throw()
            await asyncio.sleep(0.01)
            await table.shutdown()
            count = len(self.published)
            await asyncio.sleep(0.01)
            return count

        count = asyncio.run(scenario())
        assert len(self.published) == count
        assert not table.loop_running

    def test_snapshot_while_idle(self):
        """Test the runtime exposes a snapshot before any throw."""
        table = self.make_table()
        assert len(table.snapshot().dice) == 5
        assert table.last_result is None
        assert not table.rolling

    def test_failing_tick_returns_to_idle(self, caplog):
        """Test a tick that raises abandons the roll and the next throw is accepted."""
        table = self.make_table()
        handle = table.controller.handle
        failures = []

        def flaky_handle(command):
            if isinstance(command, TickElapsed) and not failures:
                failures.append(command)
                raise RuntimeError("solver blew up")
            return handle(command)

        table.controller.handle = flaky_handle

        async def scenario():
            assert await table.throw("alice") is True
            await settle(table)
            idle = (table.state, table.loop_running)
            accepted = await table.throw("bob")
            await table.shutdown()
            return idle, accepted

        idle, accepted = asyncio.run(scenario())
        assert idle == (TableState.IDLE, False)
        assert accepted is True
        assert table.last_result is None
        assert "Tick failed" in caplog.text

    def test_failing_publisher_does_not_stop_roll(self):
        """Test a broken publisher is logged and the roll still finishes."""
        table = self.make_table()
        settled = []

        async def publish(output):
            if isinstance(output, SnapshotReady):
                raise ConnectionError("gone")
            settled.append(output)

        table.publisher = publish

        async def scenario():
            await table.throw()
            await settle(table)

        asyncio.run(scenario())
        assert table.state is TableState.IDLE
        assert any(isinstance(o, RollSettled) for o in settled)
