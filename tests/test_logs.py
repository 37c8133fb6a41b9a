"""Tests for the log broadcaster."""

import asyncio
import re
import sys
import threading

from fnshortcut.logs import LogBroadcaster
from fnshortcut.routes import format_event


def _quiet(**kwargs):
    return LogBroadcaster(echo=False, **kwargs)


class TestBuffer:
    """Test the bounded history."""

    def test_keeps_most_recent_lines_in_order(self):
        """Appending 150 lines leaves the newest 100."""
        broadcaster = _quiet()
        for i in range(150):
            broadcaster.append(f"line {i}", with_timestamp=False)

        snapshot = broadcaster.snapshot()
        assert len(snapshot) == 100
        assert snapshot == [f"line {i}" for i in range(50, 150)]

    def test_timestamp_prefix(self):
        """Lines carry a local human-readable timestamp by default."""
        line = _quiet().append("Copying files...")
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} - Copying files\.\.\.", line)

    def test_without_timestamp(self):
        broadcaster = _quiet()
        assert broadcaster.append("banner", with_timestamp=False) == "banner"
        assert broadcaster.snapshot() == ["banner"]

    def test_unknown_timezone_falls_back_to_local_time(self):
        line = _quiet(timezone="Not/A_Zone").append("hello")
        assert line.endswith(" - hello")

    def test_echo_prints_line(self, capsys):
        LogBroadcaster(echo=True).append("to console", with_timestamp=False)
        assert "to console" in capsys.readouterr().out

    def test_broken_console_does_not_raise(self, monkeypatch):
        """A console that cannot be written to does not stop the buffer."""
        class BrokenStream:
            def write(self, data):
                raise BrokenPipeError(32, "Broken pipe")

            def flush(self):
                raise BrokenPipeError(32, "Broken pipe")

        monkeypatch.setattr(sys, "stdout", BrokenStream())
        broadcaster = LogBroadcaster(echo=True)

        assert broadcaster.append("still recorded", with_timestamp=False) == "still recorded"
        assert broadcaster.snapshot() == ["still recorded"]

    def test_closed_console_does_not_raise(self, monkeypatch, tmp_path):
        stream = open(tmp_path / "console.log", "w")
        stream.close()
        monkeypatch.setattr(sys, "stdout", stream)

        broadcaster = LogBroadcaster(echo=True)
        broadcaster.append("after close", with_timestamp=False)
        assert broadcaster.snapshot() == ["after close"]

    def test_snapshot_is_a_copy(self):
        broadcaster = _quiet()
        broadcaster.append("a", with_timestamp=False)
        snapshot = broadcaster.snapshot()
        snapshot.append("b")
        assert broadcaster.snapshot() == ["a"]


class TestSubscriptions:
    """Test live fan-out to subscribers."""

    def test_replays_history_then_streams(self):
        broadcaster = _quiet()
        broadcaster.append("one", with_timestamp=False)

        async def scenario():
            subscription = broadcaster.subscribe()
            broadcaster.append("two", with_timestamp=False)
            return [await subscription.get(), await subscription.get()]

        assert asyncio.run(scenario()) == ["one", "two"]

    def test_two_subscribers_see_same_order(self):
        """Subscribers joining at different times both get later lines in order."""
        broadcaster = _quiet()

        async def scenario():
            first = broadcaster.subscribe()
            broadcaster.append("x", with_timestamp=False)
            second = broadcaster.subscribe()
            broadcaster.append("y", with_timestamp=False)
            broadcaster.append("z", with_timestamp=False)
            got_first = [await first.get() for _ in range(3)]
            got_second = [await second.get() for _ in range(3)]
            return got_first, got_second

        got_first, got_second = asyncio.run(scenario())
        assert got_first == ["x", "y", "z"]
        # history replay of "x" followed by the live lines, no duplicates
        assert got_second == ["x", "y", "z"]

    def test_closing_one_subscriber_keeps_the_other(self):
        broadcaster = _quiet()

        async def scenario():
            first = broadcaster.subscribe()
            second = broadcaster.subscribe()
            first.close()
            broadcaster.append("after close", with_timestamp=False)
            return await first.get(), await second.get()

        closed_result, live_result = asyncio.run(scenario())
        assert closed_result is None
        assert live_result == "after close"
        assert broadcaster.subscriber_count == 1

    def test_close_is_idempotent(self):
        broadcaster = _quiet()

        async def scenario():
            subscription = broadcaster.subscribe()
            subscription.close()
            subscription.close()

        asyncio.run(scenario())
        assert broadcaster.subscriber_count == 0

    def test_async_iteration_stops_after_close(self):
        broadcaster = _quiet()
        broadcaster.append("only", with_timestamp=False)

        async def scenario():
            subscription = broadcaster.subscribe()
            received = []
            async for line in subscription:
                received.append(line)
                subscription.close()
            return received

        assert asyncio.run(scenario()) == ["only"]

    def test_append_from_worker_thread(self):
        """Lines appended off the event loop are delivered through the loop."""
        broadcaster = _quiet()

        async def scenario():
            subscription = broadcaster.subscribe()
            worker = threading.Thread(
                target=broadcaster.append,
                args=("from worker",),
                kwargs={"with_timestamp": False},
            )
            worker.start()
            worker.join()
            return await asyncio.wait_for(subscription.get(), timeout=2)

        assert asyncio.run(scenario()) == "from worker"

    def test_slow_subscriber_is_dropped(self):
        broadcaster = _quiet(queue_size=2)

        async def scenario():
            slow = broadcaster.subscribe()
            for i in range(3):
                broadcaster.append(f"line {i}", with_timestamp=False)
            drained = [await slow.get(), await slow.get(), await slow.get()]
            return slow, drained

        slow, drained = asyncio.run(scenario())
        assert slow.closed
        assert drained == ["line 0", "line 1", None]
        assert broadcaster.subscriber_count == 0
        assert len(broadcaster.snapshot()) == 3

    def test_dead_subscriber_does_not_block_others(self):
        broadcaster = _quiet()
        dead_loop = asyncio.new_event_loop()
        live_loop = asyncio.new_event_loop()
        try:
            dead = broadcaster.subscribe(loop=dead_loop)
            live = broadcaster.subscribe(loop=live_loop)
            dead_loop.close()

            broadcaster.append("still delivered", with_timestamp=False)

            assert dead.closed
            assert broadcaster.subscriber_count == 1
            assert live_loop.run_until_complete(live.get()) == "still delivered"
        finally:
            live_loop.close()


class TestEventFormat:
    """Test Server-Sent Events encoding."""

    def test_single_line(self):
        assert format_event("hello") == "data: hello\n\n"

    def test_multi_line_message(self):
        assert format_event("a\nb") == "data: a\ndata: b\n\n"
