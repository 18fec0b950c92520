"""Main application that wires all components together."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from streamproxy.api import APIServer, create_app
from streamproxy.camera import Camera, SessionFactory, onvif_session_factory
from streamproxy.config import load_config
from streamproxy.fanout.hub import EventFanout
from streamproxy.fleet.orchestrator import FleetOrchestrator
from streamproxy.models.config import Config
from streamproxy.supervisor.process import ProcessSupervisor

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def setup_cameras(cameras: list[Camera]) -> dict[str, BaseException]:
    """Resolve every camera concurrently; one failure does not affect the others.

    Returns the failures keyed by camera id.
    """
    results = await asyncio.gather(*(camera.setup() for camera in cameras), return_exceptions=True)
    failures: dict[str, BaseException] = {}
    for camera, result in zip(cameras, results):
        if isinstance(result, BaseException):
            failures[camera.id] = result
            logger.error("Camera setup failed: %s", result, extra={"camera_name": camera.id})
    return failures


class Fleet:
    """Cameras plus their supervisors, built from config."""

    def __init__(
        self,
        config: Config,
        *,
        session_factory: SessionFactory = onvif_session_factory,
    ) -> None:
        self.cameras = [
            Camera(
                source,
                session_factory=session_factory,
                connect_timeout_s=config.fleet.connect_timeout_s,
            )
            for source in config.sources
        ]
        self.supervisors = [
            ProcessSupervisor(
                camera,
                config.output_path,
                command=config.transcoder.command,
                stop_timeout_s=config.transcoder.stop_timeout_s,
                log_capacity=config.transcoder.log_capacity,
            )
            for camera in self.cameras
        ]
        self.setup_failures: dict[str, BaseException] = {}

    async def setup(self) -> None:
        self.setup_failures = await setup_cameras(self.cameras)

    async def close(self) -> None:
        await asyncio.gather(*(camera.close() for camera in self.cameras))


class Application:
    """Main application that orchestrates all components.

    Handles component creation, lifecycle, and graceful shutdown.
    """

    def __init__(
        self,
        config_path: Path,
        *,
        session_factory: SessionFactory = onvif_session_factory,
        server_factory: Callable[[Application], APIServer | None] | None = None,
    ) -> None:
        self._config_path = config_path
        self._session_factory = session_factory
        self._server_factory = server_factory or _default_server
        self._config: Config | None = None
        self._fleet: Fleet | None = None
        self._fanout: EventFanout | None = None
        self._orchestrator: FleetOrchestrator | None = None
        self._api_server: APIServer | None = None

        self._shutdown_event = asyncio.Event()
        self._shutdown_started = False

    @property
    def config(self) -> Config:
        if self._config is None:
            raise RuntimeError("Config not loaded")
        return self._config

    @property
    def supervisors(self) -> list[ProcessSupervisor]:
        return _require(self._fleet, "fleet").supervisors

    @property
    def fanout(self) -> EventFanout:
        return _require(self._fanout, "fanout")

    @property
    def orchestrator(self) -> FleetOrchestrator:
        return _require(self._orchestrator, "orchestrator")

    async def run(self) -> None:
        """Load config, start components, and run until a shutdown signal."""
        logger.info("Starting streamproxy...")
        self.load()

        await self.start_components()
        self._setup_signal_handlers()
        logger.info("Application started. Waiting for viewers...")

        await self._shutdown_event.wait()
        await self.shutdown()

    def load(self) -> Config:
        """Load and validate the config file."""
        self._config = load_config(self._config_path)
        return self._config

    async def start_components(self) -> None:
        """Resolve cameras, then start fan-out, orchestrator, and API server."""
        config = self.config

        fleet = Fleet(config, session_factory=self._session_factory)
        self._fleet = fleet
        await fleet.setup()
        if fleet.setup_failures:
            logger.warning(
                "%d of %d cameras failed setup: %s",
                len(fleet.setup_failures),
                len(fleet.cameras),
                ", ".join(sorted(fleet.setup_failures)),
            )

        self._orchestrator = FleetOrchestrator(
            fleet.supervisors,
            lambda: self.fanout.viewer_count,
            idle_timeout_s=config.fleet.idle_timeout_s,
            tick_interval_s=config.fleet.tick_interval_s,
        )
        self._fanout = EventFanout(fleet.supervisors, restart=self._orchestrator.restart)
        self._fanout.attach()
        self._orchestrator.start()

        self._api_server = self._server_factory(self)
        if self._api_server is not None:
            await self._api_server.start()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Stop the API server, the fleet, and release camera sessions."""
        if self._shutdown_started:
            return
        self._shutdown_started = True
        logger.info("Shutting down...")

        if self._api_server is not None:
            await self._api_server.stop()
        # pending viewer commands finish before the final fleet stop
        if self._fanout is not None:
            await self._fanout.aclose()
        if self._orchestrator is not None:
            await self._orchestrator.shutdown()
        if self._fleet is not None:
            await self._fleet.close()

        logger.info("Shutdown complete")

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_event.is_set():
            logger.warning("Shutdown already in progress, ignoring signal")
            return
        logger.info("Received %s, shutting down", sig.name)
        self._shutdown_event.set()


def _require(value: T | None, name: str) -> T:
    if value is None:
        raise RuntimeError(f"Application component not started: {name}")
    return value


def _default_server(app: Application) -> APIServer:
    return APIServer.from_config(create_app(app), app.config.server)
