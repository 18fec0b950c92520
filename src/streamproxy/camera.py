"""Camera stream address resolution and PTZ control."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from streamproxy.address import ConnectionAddress, redact_address
from streamproxy.errors import ConfigurationError, ConnectError, ConnectTimeoutError
from streamproxy.interfaces import DiscoverySession
from streamproxy.models.config import OnvifSourceConfig, StreamSourceConfig
from streamproxy.onvif.client import OnvifCameraClient
from streamproxy.timeouts import race_with_timeout

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_S = 5.0
DEFAULT_ONVIF_PORT = 80

SessionFactory = Callable[[ConnectionAddress], DiscoverySession]


class ResolverState(StrEnum):
    """Stream address resolution state of a camera."""

    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class PtzVector(BaseModel):
    """Relative pan/tilt/zoom movement."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=-1.0, le=1.0)
    y: float = Field(ge=-1.0, le=1.0)
    zoom: float = Field(ge=0.0, le=1.0)


def onvif_session_factory(address: ConnectionAddress) -> DiscoverySession:
    """Create an ONVIF session for the discovery endpoint ``address``."""
    return OnvifCameraClient(
        address.hostname,
        address.username or "",
        address.password or "",
        port=address.port or DEFAULT_ONVIF_PORT,
    )


class Camera:
    """Resolves a source description into a usable stream address.

    Owns the ONVIF session, if one was opened; call ``close()`` to release it.
    """

    def __init__(
        self,
        config: StreamSourceConfig,
        *,
        session_factory: SessionFactory = onvif_session_factory,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ) -> None:
        self.config = config
        self._session_factory = session_factory
        self._connect_timeout_s = connect_timeout_s
        self._session: DiscoverySession | None = None
        self._stream_url: str | None = None
        self._state = ResolverState.UNRESOLVED
        self._late_close_tasks: set[asyncio.Task[None]] = set()

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def stream_url(self) -> str | None:
        return self._stream_url

    @property
    def state(self) -> ResolverState:
        return self._state

    @property
    def has_session(self) -> bool:
        return self._session is not None

    async def setup(self) -> None:
        """Resolve the stream address; ONVIF wins over RTSP when both are set."""
        onvif = self.config.onvif
        rtsp = self.config.rtsp
        if onvif is None and rtsp is None:
            self._state = ResolverState.FAILED
            raise ConfigurationError(
                "a valid camera configuration must contain at least an onvif or an rtsp "
                "configuration",
                camera_id=self.id,
            )

        self._state = ResolverState.RESOLVING
        try:
            if onvif is not None:
                self._stream_url = await self._setup_onvif(onvif)
            else:
                assert rtsp is not None
                self._stream_url = rtsp.url
        except Exception:
            self._state = ResolverState.FAILED
            raise

        self._state = ResolverState.RESOLVED
        logger.info(
            "Camera resolved: %s",
            redact_address(self._stream_url),
            extra={"camera_name": self.id},
        )

    async def _setup_onvif(self, onvif: OnvifSourceConfig) -> str:
        endpoint = ConnectionAddress.parse(onvif.url)
        try:
            session = self._session_factory(endpoint)
        except Exception as exc:
            raise ConnectError(self.id, exc) from exc

        outcome = await race_with_timeout(session.connect(), self._connect_timeout_s)
        if outcome.timed_out:
            outcome.abandon(lambda _: self._close_late_session(session))
            raise ConnectTimeoutError(self.id, self._connect_timeout_s)
        try:
            outcome.result()
        except Exception as exc:
            await self._close_quietly(session)
            raise ConnectError(self.id, exc) from exc

        try:
            uri = await session.get_stream_uri(onvif.profile, onvif.protocol)
            stream_address = ConnectionAddress.parse(uri)
        except Exception as exc:
            await self._close_quietly(session)
            raise ConnectError(self.id, exc) from exc

        if self._session is not None:
            await self._close_quietly(self._session)
        self._session = session
        return stream_address.with_credentials(endpoint.username, endpoint.password).serialize()

    async def relative_move(self, vector: PtzVector) -> None:
        """Advisory PTZ move; failures are logged, never raised."""
        session = self._session
        if session is None:
            return
        await self._advisory(
            "relative move", session.relative_move(vector.x, vector.y, vector.zoom)
        )

    async def goto_home_position(self) -> None:
        """Advisory move to the home position; failures are logged, never raised."""
        session = self._session
        if session is None:
            return
        await self._advisory("go to home position", session.goto_home_position())

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None:
            await self._close_quietly(session)

    async def _advisory(self, description: str, command: Awaitable[None]) -> None:
        try:
            await command
        except Exception as exc:
            logger.warning(
                "PTZ %s failed: %s", description, exc, extra={"camera_name": self.id}
            )

    def _close_late_session(self, session: DiscoverySession) -> None:
        logger.info("Closing ONVIF session that connected after timeout", extra={"camera_name": self.id})
        task = asyncio.get_running_loop().create_task(self._close_quietly(session))
        self._late_close_tasks.add(task)
        task.add_done_callback(self._late_close_tasks.discard)

    async def _close_quietly(self, session: DiscoverySession) -> None:
        try:
            await session.close()
        except Exception as exc:
            logger.warning("Failed to close ONVIF session: %s", exc, extra={"camera_name": self.id})


__all__ = [
    "Camera",
    "DEFAULT_CONNECT_TIMEOUT_S",
    "PtzVector",
    "ResolverState",
    "onvif_session_factory",
]
