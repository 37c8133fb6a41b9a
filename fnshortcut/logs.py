"""
fn-shortcut - Log Broadcaster
=============================
Keeps the most recent log lines in memory and fans every new line out to
live subscribers (one per Server-Sent Events client).

Lines are plain strings. With timestamps enabled they look like:
    2026-02-08 12:00:00 - Copying files...

Usage:
    # Anywhere (any thread), report progress:
    broadcaster.append("Copying files...")

    # In an async endpoint, stream history followed by live lines:
    subscription = broadcaster.subscribe()
    try:
        async for line in subscription:
            yield f"data: {line}\\n\\n"
    finally:
        subscription.close()

    # Polling consumers:
    broadcaster.snapshot()
"""

import asyncio
import threading
from collections import deque
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogSubscription:
    """
    A live channel bound to one asyncio event loop.

    The subscription is pre-seeded with the broadcaster history and then
    receives new lines through a bounded asyncio.Queue. Lines pushed from
    other threads are handed over with loop.call_soon_threadsafe, so
    appenders never block on a slow reader.

    Attributes:
        closed: True once the subscription stopped receiving lines.
    """

    def __init__(
        self,
        broadcaster: "LogBroadcaster",
        loop: asyncio.AbstractEventLoop,
        history: list[str],
        maxsize: int,
    ):
        self._broadcaster = broadcaster
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(maxsize, len(history) + 1))
        self.closed = False
        for line in history:
            self._queue.put_nowait(line)

    def push(self, line: str) -> bool:
        """
        Deliver a line without blocking.

        Returns:
            False if the subscriber is gone and should be dropped.
        """
        if self.closed:
            return False
        if self._on_loop():
            return self._offer(line)
        try:
            self._loop.call_soon_threadsafe(self._offer_later, line)
        except RuntimeError:
            # Event loop already closed: the client is gone
            self.closed = True
            return False
        return True

    def close(self) -> None:
        """Stop receiving lines and wake up a pending reader. Idempotent."""
        if self.closed and self not in self._broadcaster:
            return
        self.closed = True
        self._broadcaster.unsubscribe(self)
        if self._on_loop():
            self._wake()
        else:
            try:
                self._loop.call_soon_threadsafe(self._wake)
            except RuntimeError:
                pass  # loop closed, nobody is waiting

    async def get(self) -> str | None:
        """Wait for the next line; None once the subscription is closed and drained."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        line = await self.get()
        if line is None:
            raise StopAsyncIteration
        return line

    # -- Internal helpers ------------------------------------------------------

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _offer(self, line: str) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(line)
        except asyncio.QueueFull:
            # Reader fell too far behind; cut it loose
            self.closed = True
            return False
        return True

    def _offer_later(self, line: str) -> None:
        if not self._offer(line):
            self.close()

    def _wake(self) -> None:
        if not self._queue.full():
            self._queue.put_nowait(None)


class LogBroadcaster:
    """
    Bounded in-memory log with live fan-out.

    The lock covers the buffer append together with the non-blocking
    enqueue to each subscriber, and membership changes. Subscribing copies
    the history under the same lock, so a new subscriber never misses or
    double-receives a line appended around the moment it joined.

    Attributes:
        max_lines: Number of lines kept for history and polling.
        echo:      Also print each line to stdout (the console log).
    """

    def __init__(
        self,
        max_lines: int = 100,
        timezone: str | None = None,
        queue_size: int = 1000,
        echo: bool = True,
    ):
        self.max_lines = max_lines
        self.queue_size = queue_size
        self.echo = echo
        self._tz = _resolve_timezone(timezone)
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._subscribers: list[LogSubscription] = []
        self._lock = threading.RLock()

    def append(self, text: str, with_timestamp: bool = True) -> str:
        """
        Record a line and push it to every live subscriber.

        A subscriber that cannot take the line is removed; the others are
        unaffected. Never raises.

        Args:
            text:           Message text.
            with_timestamp: Prefix the local time ("YYYY-MM-DD HH:MM:SS - ").

        Returns:
            The formatted line as stored.
        """
        line = f"{self._timestamp()} - {text}" if with_timestamp else text
        if self.echo:
            try:
                print(line, flush=True)
            except (OSError, ValueError):
                pass  # console gone (broken pipe, closed stream); buffer still records

        with self._lock:
            self._lines.append(line)
            dead = [sub for sub in self._subscribers if not sub.push(line)]
            for sub in dead:
                self._subscribers.remove(sub)

        return line

    def subscribe(self, loop: asyncio.AbstractEventLoop | None = None) -> LogSubscription:
        """
        Open a live channel pre-seeded with the buffered history.

        Args:
            loop: Event loop the reader runs on (defaults to the running loop).

        Returns:
            A LogSubscription; close() it when the client goes away.
        """
        if loop is None:
            loop = asyncio.get_running_loop()
        with self._lock:
            subscription = LogSubscription(self, loop, list(self._lines), self.queue_size)
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: LogSubscription) -> None:
        """Remove a subscriber if it is still registered."""
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def snapshot(self) -> list[str]:
        """Return the buffered lines, oldest first."""
        with self._lock:
            return list(self._lines)

    @property
    def subscriber_count(self) -> int:
        """Number of currently registered subscribers."""
        with self._lock:
            return len(self._subscribers)

    def __contains__(self, subscription: object) -> bool:
        with self._lock:
            return subscription in self._subscribers

    def _timestamp(self) -> str:
        return datetime.now(self._tz).strftime(TIMESTAMP_FORMAT)


def _resolve_timezone(name: str | None) -> tzinfo | None:
    """Map a configured IANA name to a tzinfo; None means host local time."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None
