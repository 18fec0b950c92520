"""Viewer-driven fleet start/stop with one transition at a time."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Sequence
from enum import StrEnum
from typing import Any

from streamproxy.supervisor.process import ProcessSupervisor, SupervisorState

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT_S = 60.0
DEFAULT_TICK_INTERVAL_S = 1.0


class TransitionKind(StrEnum):
    """Fleet transition being executed."""

    START = "start"
    STOP = "stop"
    RECOVER = "recover"
    RESTART = "restart"


class FleetOrchestrator:
    """Starts the fleet while viewers are present and stops it once idle.

    Each ``tick()`` samples the viewer count. The fleet should run while the
    last viewer was seen less than ``idle_timeout_s`` ago. A transition runs
    as a task; while it is in flight further ticks only record viewer
    presence, so transitions never overlap. A viewer-requested restart of a
    single supervisor counts as a transition too.

    Starts with ``fleet_running=False`` and ``last_viewer_seen_at=now``, so
    the first tick starts the fleet.
    """

    def __init__(
        self,
        supervisors: Sequence[ProcessSupervisor],
        viewer_count: Callable[[], int],
        *,
        idle_timeout_s: float = DEFAULT_IDLE_TIMEOUT_S,
        tick_interval_s: float = DEFAULT_TICK_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._supervisors = list(supervisors)
        self._viewer_count = viewer_count
        self._idle_timeout_s = idle_timeout_s
        self._tick_interval_s = tick_interval_s
        self._clock = clock

        self._last_viewer_seen_at = clock()
        self._fleet_running = False
        self._transition: asyncio.Task[None] | None = None
        self._transition_kind: TransitionKind | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def fleet_running(self) -> bool:
        return self._fleet_running

    @property
    def last_viewer_seen_at(self) -> float:
        return self._last_viewer_seen_at

    @property
    def transition_in_flight(self) -> TransitionKind | None:
        """Kind of the running transition, or None when idle."""
        if self._transition is None:
            return None
        return self._transition_kind

    def desired_running(self, now: float) -> bool:
        return (now - self._last_viewer_seen_at) < self._idle_timeout_s

    def tick(self) -> asyncio.Task[None] | None:
        """Sample viewers and begin a transition if one is needed.

        Returns the transition task started by this tick, if any.
        """
        now = self._clock()
        if self._viewer_count() > 0:
            self._last_viewer_seen_at = now

        if self._transition is not None or self._closing:
            return None

        desired = self.desired_running(now)
        if desired != self._fleet_running:
            logger.info(
                "Fleet transition: desired_running=%s fleet_running=%s",
                desired,
                self._fleet_running,
            )
            kind = TransitionKind.START if desired else TransitionKind.STOP
        elif desired and self._exited_supervisors():
            kind = TransitionKind.RECOVER
        else:
            return None

        return self._begin(kind, self._run_transition(kind))

    def request_restart(self, supervisor: ProcessSupervisor) -> asyncio.Task[None] | None:
        """Begin restarting one supervisor as the in-flight transition.

        Refused (returns None) while another transition runs, while the fleet
        is stopped or shutting down, or once it is due to stop, so a restart
        never brings a worker back after the fleet went idle.
        """
        if self._closing or not self._fleet_running:
            reason = "fleet is not running"
        elif self._transition is not None:
            reason = f"fleet {self._transition_kind} in progress"
        elif not self.desired_running(self._clock()):
            reason = "fleet is going idle"
        else:
            return self._begin(TransitionKind.RESTART, self._run_restart(supervisor))

        logger.info(
            "Ignoring restart: %s",
            reason,
            extra={"camera_name": supervisor.camera_id},
        )
        return None

    async def restart(self, supervisor: ProcessSupervisor) -> bool:
        """Restart ``supervisor`` if the fleet allows it; True when it ran."""
        transition = self.request_restart(supervisor)
        if transition is None:
            return False
        await asyncio.shield(transition)
        return True

    async def wait_for_transition(self) -> None:
        """Wait for the in-flight transition, if any."""
        transition = self._transition
        if transition is not None:
            await asyncio.shield(transition)

    async def run(self) -> None:
        """Tick forever at the configured interval."""
        while True:
            self.tick()
            await asyncio.sleep(self._tick_interval_s)

    def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self.run())

    async def shutdown(self) -> None:
        """Stop ticking, wait for any transition, and stop every active supervisor."""
        self._closing = True
        loop_task = self._loop_task
        self._loop_task = None
        if loop_task is not None:
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass

        await self.wait_for_transition()
        await self._apply(TransitionKind.STOP)
        self._fleet_running = False

    def _begin(self, kind: TransitionKind, work: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        self._transition_kind = kind
        self._transition = asyncio.create_task(self._finish_transition(work))
        return self._transition

    async def _finish_transition(self, work: Coroutine[Any, Any, None]) -> None:
        try:
            await work
        finally:
            self._transition = None
            self._transition_kind = None

    async def _run_transition(self, kind: TransitionKind) -> None:
        await self._apply(kind)
        if kind is TransitionKind.START:
            self._fleet_running = True
        elif kind is TransitionKind.STOP:
            self._fleet_running = False

    async def _run_restart(self, supervisor: ProcessSupervisor) -> None:
        try:
            await supervisor.restart()
        except Exception as exc:
            logger.error(
                "Restart failed: %s",
                exc,
                exc_info=exc,
                extra={"camera_name": supervisor.camera_id},
            )

    async def _apply(self, kind: TransitionKind) -> None:
        if kind is TransitionKind.STOP:
            targets = [s for s in self._supervisors if s.can_stop]
            operations = [s.stop() for s in targets]
        elif kind is TransitionKind.RECOVER:
            targets = self._exited_supervisors()
            operations = [s.start() for s in targets]
        else:
            targets = [s for s in self._supervisors if s.can_start]
            operations = [s.start() for s in targets]

        results = await asyncio.gather(*operations, return_exceptions=True)
        for supervisor, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Fleet %s failed: %s",
                    kind,
                    result,
                    exc_info=result,
                    extra={"camera_name": supervisor.camera_id},
                )

    def _exited_supervisors(self) -> list[ProcessSupervisor]:
        return [s for s in self._supervisors if s.state is SupervisorState.EXITED]


__all__ = [
    "DEFAULT_IDLE_TIMEOUT_S",
    "DEFAULT_TICK_INTERVAL_S",
    "FleetOrchestrator",
    "TransitionKind",
]
