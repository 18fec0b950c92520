"""Supervises one external transcoder process per camera."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shlex
import signal
from collections.abc import Sequence
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from streamproxy.address import redact_address
from streamproxy.errors import ConfigurationError, ProcessSpawnError, UsageError
from streamproxy.supervisor.ring_log import DEFAULT_LOG_CAPACITY, LogChannel, RingLogBuffer
from streamproxy.timeouts import race_with_timeout

if TYPE_CHECKING:
    from streamproxy.camera import Camera

logger = logging.getLogger(__name__)

DEFAULT_TRANSCODER_COMMAND: tuple[str, ...] = ("bash", "ffmpeg-wrapper.sh")
DEFAULT_STOP_TIMEOUT_S = 5.0
_CAMERA_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_READ_CHUNK_SIZE = 64 * 1024


class SupervisorState(StrEnum):
    """Lifecycle of a supervised transcoder."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    EXITED = "exited"


class ProcessSupervisor:
    """Owns the transcoder process for one camera.

    ``start()`` and ``stop()`` must alternate. A worker that exits on its own
    moves the supervisor to ``EXITED``; both ``start()`` and ``stop()`` accept
    that state.
    """

    def __init__(
        self,
        camera: Camera,
        output_root: str | Path,
        *,
        command: Sequence[str] = DEFAULT_TRANSCODER_COMMAND,
        stop_timeout_s: float = DEFAULT_STOP_TIMEOUT_S,
        log_capacity: int = DEFAULT_LOG_CAPACITY,
    ) -> None:
        if not _CAMERA_ID_PATTERN.fullmatch(camera.id):
            raise ConfigurationError(
                f"invalid source id '{camera.id}', use only [a-zA-Z0-9_-]",
                camera_id=camera.id,
            )
        if not command:
            raise ConfigurationError("transcoder command must not be empty", camera_id=camera.id)

        self._camera = camera
        self._output_path = Path(output_root).resolve() / camera.id
        self._command = tuple(command)
        self._stop_timeout_s = stop_timeout_s
        self._ring_log = RingLogBuffer(log_capacity)

        self._state = SupervisorState.STOPPED
        self._process: asyncio.subprocess.Process | None = None
        self._exit_task: asyncio.Task[int] | None = None
        self.last_exit_code: int | None = None

    @property
    def camera(self) -> Camera:
        return self._camera

    @property
    def camera_id(self) -> str:
        return self._camera.id

    @property
    def ring_log(self) -> RingLogBuffer:
        return self._ring_log

    @property
    def output_path(self) -> Path:
        return self._output_path

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def pid(self) -> int | None:
        process = self._process
        return process.pid if process is not None else None

    @property
    def can_start(self) -> bool:
        return self._state in (SupervisorState.STOPPED, SupervisorState.EXITED)

    @property
    def can_stop(self) -> bool:
        return self._state in (SupervisorState.RUNNING, SupervisorState.EXITED)

    def build_args(self, stream_url: str) -> list[str]:
        """Return the full transcoder command line for ``stream_url``."""
        args = [*self._command, "--mkdir", "--clean-on-exit"]
        latency = self._camera.config.target_latency_secs
        if latency:
            args.extend(["--target-latency", f"{latency:g}"])
        args.extend([stream_url, str(self._output_path)])
        return args

    async def start(self) -> None:
        """Spawn the transcoder; raises UsageError if a worker is already owned."""
        if not self.can_start:
            raise UsageError(
                f"start() called while supervisor is {self._state}", camera_id=self.camera_id
            )
        if self._state is SupervisorState.EXITED:
            await self._reap()

        stream_url = self._camera.stream_url
        if not stream_url:
            raise ProcessSpawnError(
                "camera does not have a resolved stream address", camera_id=self.camera_id
            )

        self._state = SupervisorState.STARTING
        args = self.build_args(stream_url)
        logger.info(
            "Starting transcoder: %s",
            _format_cmd([*args[:-2], redact_address(stream_url), args[-1]]),
            extra={"camera_name": self.camera_id},
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except (OSError, ValueError) as exc:
            self._state = SupervisorState.STOPPED
            raise ProcessSpawnError(
                f"failed to spawn transcoder for {self.camera_id}: {exc}",
                camera_id=self.camera_id,
                cause=exc,
            ) from exc

        self._process = process
        self.last_exit_code = None
        self._exit_task = asyncio.create_task(self._watch_exit(process))
        self._state = SupervisorState.RUNNING
        logger.info(
            "Transcoder started: pid=%d", process.pid, extra={"camera_name": self.camera_id}
        )

    async def stop(self) -> None:
        """SIGTERM the transcoder, SIGKILL it after the timeout, and wait for exit."""
        if not self.can_stop:
            raise UsageError(
                f"stop() called while supervisor is {self._state}", camera_id=self.camera_id
            )

        if self._state is SupervisorState.EXITED:
            await self._reap()
            return

        process = self._process
        exit_task = self._exit_task
        assert process is not None and exit_task is not None

        self._state = SupervisorState.STOPPING
        logger.info("Stopping transcoder: pid=%d", process.pid, extra={"camera_name": self.camera_id})
        _send_signal(process, signal.SIGTERM)

        outcome = await race_with_timeout(exit_task, self._stop_timeout_s)
        if outcome.timed_out:
            logger.warning(
                "Transcoder did not exit within %.1fs after SIGTERM; sending SIGKILL: pid=%d",
                self._stop_timeout_s,
                process.pid,
                extra={"camera_name": self.camera_id},
            )
            _send_signal(process, signal.SIGKILL)

        await exit_task
        self._reset()
        logger.info("Transcoder stopped", extra={"camera_name": self.camera_id})

    async def restart(self) -> None:
        """Stop the worker, then start a fresh one.

        Raises:
            UsageError: no worker is owned; nothing is started.
        """
        await self.stop()
        await self.start()

    async def _reap(self) -> None:
        exit_task = self._exit_task
        if exit_task is not None:
            await exit_task
        self._reset()

    def _reset(self) -> None:
        self._process = None
        self._exit_task = None
        self._state = SupervisorState.STOPPED

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> int:
        readers = [
            asyncio.create_task(self._pump(process.stdout, LogChannel.STDOUT)),
            asyncio.create_task(self._pump(process.stderr, LogChannel.STDERR)),
        ]
        return_code = await process.wait()
        await asyncio.gather(*readers, return_exceptions=True)
        self.last_exit_code = return_code

        if self._state is SupervisorState.RUNNING and self._process is process:
            logger.warning(
                "Transcoder exited unexpectedly: pid=%d rc=%d",
                process.pid,
                return_code,
                extra={"camera_name": self.camera_id},
            )
            self._state = SupervisorState.EXITED
        return return_code

    async def _pump(self, stream: asyncio.StreamReader | None, channel: LogChannel) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_SIZE)
            if not chunk:
                return
            self._ring_log.push_chunk(channel, chunk)


def _send_signal(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    if _signal_process_group(process.pid, sig):
        return
    try:
        process.send_signal(sig)
    except ProcessLookupError:
        return


def _signal_process_group(pid: int, sig: int) -> bool:
    """Best-effort process-group signal for the spawned transcoder tree."""
    if not hasattr(os, "killpg"):
        return False
    try:
        pgid = os.getpgid(pid)
    except OSError:
        return False
    try:
        os.killpg(pgid, sig)
        return True
    except OSError:
        return False


def _format_cmd(cmd: list[str]) -> str:
    return shlex.join([str(x) for x in cmd])


__all__ = [
    "DEFAULT_STOP_TIMEOUT_S",
    "DEFAULT_TRANSCODER_COMMAND",
    "ProcessSupervisor",
    "SupervisorState",
]
