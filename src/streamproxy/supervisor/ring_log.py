"""Bounded, line-reassembling capture buffer for transcoder output."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 1000


class LogChannel(StrEnum):
    """Output stream a log line was captured from."""

    STDOUT = "stdout"
    STDERR = "stderr"


class LogEntry(BaseModel):
    """One reassembled output line, without its trailing newline."""

    model_config = ConfigDict(frozen=True)

    channel: LogChannel
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    content: str


LogCallback = Callable[[LogEntry], None]


class LogSubscription:
    """Handle for one subscriber; ``close()`` stops delivery."""

    def __init__(self, buffer: RingLogBuffer, callback: LogCallback, channel: LogChannel | None):
        self._buffer = buffer
        self.callback = callback
        self.channel = channel

    @property
    def active(self) -> bool:
        return self in self._buffer._subscriptions

    def close(self) -> None:
        self._buffer._unsubscribe(self)


class RingLogBuffer:
    """Keeps the last ``capacity`` lines of both output channels combined.

    Partial lines are accumulated as bytes per channel until a newline arrives,
    so chunks may split lines (and multi-byte characters) anywhere. A line
    that never terminates grows its scratch buffer without bound.
    """

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._ring: deque[LogEntry] = deque(maxlen=capacity)
        self._scratch: dict[LogChannel, bytearray] = {
            LogChannel.STDOUT: bytearray(),
            LogChannel.STDERR: bytearray(),
        }
        self._subscriptions: list[LogSubscription] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ring(self) -> tuple[LogEntry, ...]:
        """Snapshot of retained entries, oldest first."""
        return tuple(self._ring)

    def pending(self, channel: LogChannel) -> bytes:
        """Bytes received on ``channel`` after its last newline."""
        return bytes(self._scratch[channel])

    def subscribe(
        self, callback: LogCallback, *, channel: LogChannel | None = None
    ) -> LogSubscription:
        """Deliver new entries to ``callback``; ``channel`` limits delivery to one stream."""
        subscription = LogSubscription(self, callback, channel)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: LogSubscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def push_chunk(self, channel: LogChannel, chunk: bytes) -> None:
        """Append raw output bytes and emit an entry for every completed line."""
        if not chunk:
            return

        scratch = self._scratch[channel]
        start = 0
        newline = chunk.find(b"\n", start)
        while newline >= 0:
            scratch += chunk[start:newline]
            content = scratch.decode("utf-8", errors="replace")
            scratch.clear()
            self._push_line(LogEntry(channel=channel, content=content))
            start = newline + 1
            newline = chunk.find(b"\n", start)

        scratch += chunk[start:]

    def _push_line(self, entry: LogEntry) -> None:
        # deque(maxlen) evicts the oldest entry
        self._ring.append(entry)

        for subscription in list(self._subscriptions):
            if subscription.channel is not None and subscription.channel != entry.channel:
                continue
            try:
                subscription.callback(entry)
            except Exception as exc:
                logger.error("Log subscriber failed: %s", exc, exc_info=exc)
