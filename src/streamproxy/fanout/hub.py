"""Broadcasts log entries to viewers and dispatches their commands."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import ValidationError

from streamproxy.fanout.messages import (
    KNOWN_COMMAND_TYPES,
    VIEWER_COMMAND_ADAPTER,
    LogMessage,
    OutboundMessage,
    PingCommand,
    PtzHomeCommand,
    PtzRelativeCommand,
    RestartCommand,
    SourceState,
    StateCommand,
    StateMessage,
    TargetLatencyCommand,
    TargetLatencyMessage,
    encode_message,
)
from streamproxy.supervisor.process import ProcessSupervisor
from streamproxy.supervisor.ring_log import LogEntry, LogSubscription

logger = logging.getLogger(__name__)

DEFAULT_SESSION_QUEUE_SIZE = 4096
_session_ids = itertools.count(1)

RestartHandler = Callable[[ProcessSupervisor], Awaitable[object]]


async def _restart_directly(supervisor: ProcessSupervisor) -> None:
    await supervisor.restart()


class ViewerSession:
    """One connected viewer; outbound messages queue until the transport drains them."""

    def __init__(self, *, max_queue: int = DEFAULT_SESSION_QUEUE_SIZE) -> None:
        self.id = next(_session_ids)
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queue)
        self.dropped = 0

    def deliver(self, payload: str) -> None:
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(
                    "Viewer session %d is not draining; dropped %d messages",
                    self.id,
                    self.dropped,
                )

    async def next_message(self) -> str:
        return await self._queue.get()

    def pending(self) -> list[str]:
        """Drain and return everything queued so far."""
        items: list[str] = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
        return items


class EventFanout:
    """Connects supervisors' log buffers and viewer sessions.

    All methods run to completion on the event loop; the session set needs no
    locking. Restart and PTZ commands run as tracked background tasks so the
    inbound handler never blocks.

    ``restart`` performs a viewer-requested restart; the application passes
    the fleet orchestrator's so restarts are serialized with fleet
    transitions. Without one the supervisor is restarted directly.
    """

    def __init__(
        self,
        supervisors: Sequence[ProcessSupervisor],
        *,
        restart: RestartHandler | None = None,
    ) -> None:
        self._supervisors = {supervisor.camera_id: supervisor for supervisor in supervisors}
        self._sessions: set[ViewerSession] = set()
        self._subscriptions: list[LogSubscription] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._restart: RestartHandler = restart or _restart_directly

    @property
    def viewer_count(self) -> int:
        return len(self._sessions)

    @property
    def sessions(self) -> frozenset[ViewerSession]:
        return frozenset(self._sessions)

    def attach(self) -> None:
        """Subscribe to every supervisor's log buffer."""
        if self._subscriptions:
            return
        for camera_id, supervisor in self._supervisors.items():
            self._subscriptions.append(
                supervisor.ring_log.subscribe(self._entry_callback(camera_id))
            )

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions = []

    def connect(self) -> ViewerSession:
        session = ViewerSession()
        self._sessions.add(session)
        logger.info("Viewer connected: session=%d viewers=%d", session.id, len(self._sessions))
        return session

    def disconnect(self, session: ViewerSession) -> None:
        self._sessions.discard(session)
        logger.info("Viewer disconnected: session=%d viewers=%d", session.id, len(self._sessions))

    def broadcast(self, message: OutboundMessage, *, exclude: ViewerSession | None = None) -> None:
        payload = encode_message(message)
        for session in list(self._sessions):
            if session is exclude:
                continue
            session.deliver(payload)

    def state_snapshot(self) -> StateMessage:
        # status is always "ok": no health detection exists yet
        return StateMessage(
            source_states=[
                SourceState(id=camera_id, log_messages=list(supervisor.ring_log.ring))
                for camera_id, supervisor in self._supervisors.items()
            ]
        )

    def handle_message(self, session: ViewerSession, raw: str | bytes) -> None:
        """Dispatch one inbound viewer message; invalid input is ignored."""
        try:
            data: Any = json.loads(raw)
        except (ValueError, TypeError):
            logger.debug("Ignoring non-JSON viewer message from session=%d", session.id)
            return

        if not isinstance(data, dict) or data.get("type") not in KNOWN_COMMAND_TYPES:
            logger.info("WebSocket client sent unexpected message: %.200s", raw)
            return

        try:
            command = VIEWER_COMMAND_ADAPTER.validate_python(data)
        except ValidationError as exc:
            logger.debug("Ignoring malformed %s message: %s", data.get("type"), exc)
            return

        match command:
            case PingCommand():
                pass
            case StateCommand():
                session.deliver(encode_message(self.state_snapshot()))
            case TargetLatencyCommand(stream_id=stream_id, value=value):
                self._set_target_latency(session, stream_id, value)
            case RestartCommand(stream_id=stream_id):
                supervisor = self._supervisors.get(stream_id)
                if supervisor is not None:
                    self._spawn(f"restart {stream_id}", self._restart(supervisor))
            case PtzRelativeCommand(stream_id=stream_id, value=vector):
                supervisor = self._supervisors.get(stream_id)
                if supervisor is not None:
                    self._spawn(f"ptz relative {stream_id}", supervisor.camera.relative_move(vector))
            case PtzHomeCommand(stream_id=stream_id):
                supervisor = self._supervisors.get(stream_id)
                if supervisor is not None:
                    self._spawn(f"ptz home {stream_id}", supervisor.camera.goto_home_position())

    async def aclose(self) -> None:
        """Detach from buffers, drop sessions, and wait for pending commands."""
        self.detach()
        self._sessions.clear()
        await self.wait_for_commands()

    async def wait_for_commands(self) -> None:
        """Wait until every dispatched restart/PTZ command has finished."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _set_target_latency(self, origin: ViewerSession, stream_id: str, value: float) -> None:
        supervisor = self._supervisors.get(stream_id)
        if supervisor is None:
            return
        supervisor.camera.config.target_latency_secs = value
        logger.info("set %s latency = %s", stream_id, value)
        self.broadcast(TargetLatencyMessage(id=stream_id, value=value), exclude=origin)

    def _entry_callback(self, camera_id: str) -> Callable[[LogEntry], None]:
        def _on_entry(entry: LogEntry) -> None:
            self.broadcast(LogMessage(id=camera_id, entry=entry))

        return _on_entry

    def _spawn(self, description: str, command: Awaitable[object]) -> None:
        async def _run() -> None:
            try:
                await command
            except Exception as exc:
                logger.error("Failed to %s: %s", description, exc, exc_info=exc)

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
