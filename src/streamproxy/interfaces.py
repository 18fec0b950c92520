"""Interface definitions for streamproxy collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod


class DiscoverySession(ABC):
    """Control connection to one camera (ONVIF in production)."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish the session; raises on failure."""
        raise NotImplementedError

    @abstractmethod
    async def get_stream_uri(self, profile: str | None, protocol: str | None) -> str:
        """Return the stream URI for ``profile`` (first profile when None)."""
        raise NotImplementedError

    @abstractmethod
    async def relative_move(self, x: float, y: float, zoom: float) -> None:
        """Move pan/tilt/zoom relative to the current position."""
        raise NotImplementedError

    @abstractmethod
    async def goto_home_position(self) -> None:
        """Return the camera to its configured home position."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources."""
        raise NotImplementedError
