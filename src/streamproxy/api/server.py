"""FastAPI server wiring for streamproxy."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from streamproxy.api.routes import router
from streamproxy.models.config import ServerConfig

if TYPE_CHECKING:
    from streamproxy.app import Application

logger = logging.getLogger(__name__)


def create_app(app_instance: Application) -> FastAPI:
    """Create the FastAPI application bound to a running Application."""
    app = FastAPI(title="streamproxy", version="1.0.0")
    app.state.streamproxy = app_instance
    app.include_router(router)

    config = app_instance.config
    if config.server.serve_streams:
        app.mount(
            "/streams",
            StaticFiles(directory=Path(config.output_path), check_dir=False),
            name="streams",
        )

    static_dir = config.server.static_dir
    if static_dir is not None:
        static_path = Path(static_dir).expanduser().resolve()
        if static_path.is_dir():
            app.mount("/static", StaticFiles(directory=static_path, html=True), name="static")
        else:
            logger.warning("Static directory not found at %s; not serving it", static_path)

    return app


class APIServer:
    """Runs uvicorn as a background task of the application's event loop."""

    def __init__(
        self,
        app: FastAPI,
        host: str,
        port: int,
        *,
        startup_timeout_s: float = 5.0,
    ) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._startup_timeout_s = startup_timeout_s
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, app: FastAPI, config: ServerConfig) -> APIServer:
        return cls(app, host=config.host, port=config.port)

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        """Start serving; returns once uvicorn reports it is listening."""
        if self._task is not None:
            return

        # log_config=None keeps the handlers installed by configure_logging()
        server = uvicorn.Server(
            uvicorn.Config(
                self._app,
                host=self._host,
                port=self._port,
                loop="asyncio",
                log_config=None,
                access_log=False,
            )
        )
        # the Application owns SIGINT/SIGTERM
        cast(Any, server).install_signal_handlers = False
        self._server = server
        self._task = asyncio.create_task(server.serve())
        try:
            await self._wait_until_started(server, self._task)
        except Exception:
            server.should_exit = True
            with suppress(Exception):
                await self._task
            self._server = None
            self._task = None
            raise

        logger.info("Viewer server listening on http://%s:%d", self._host, self._port)

    async def _wait_until_started(self, server: uvicorn.Server, task: asyncio.Task[None]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._startup_timeout_s
        while not server.started:
            if task.done():
                # re-raises the startup failure, if there was one
                task.result()
                raise RuntimeError("API server exited before startup completed")
            if loop.time() >= deadline:
                raise TimeoutError(
                    f"API server did not start on {self._host}:{self._port} "
                    f"within {self._startup_timeout_s:.1f}s"
                )
            await asyncio.sleep(0.01)

    async def stop(self) -> None:
        """Ask uvicorn to exit and wait for it."""
        server, task = self._server, self._task
        if server is None or task is None:
            return
        server.should_exit = True
        try:
            await task
        except Exception as exc:
            logger.error("API server stopped with error: %s", exc, exc_info=exc)
        finally:
            self._server = None
            self._task = None
        logger.info("Viewer server stopped")
