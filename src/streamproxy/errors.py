"""Error hierarchy for streamproxy camera supervision."""

from __future__ import annotations


class StreamProxyError(Exception):
    """Base exception for all streamproxy errors.

    Carries the camera id when the failure is scoped to one camera and
    preserves the original exception via chaining.
    """

    def __init__(
        self, message: str, *, camera_id: str | None = None, cause: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.camera_id = camera_id
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ConfigurationError(StreamProxyError):
    """Camera configuration is missing required information or is invalid."""


class MalformedAddressError(StreamProxyError, ValueError):
    """Address string does not match the connection address grammar."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Malformed connection address: {address!r}")
        self.address = address


class DiscoveryError(StreamProxyError):
    """ONVIF discovery handshake failed."""


class ConnectTimeoutError(DiscoveryError):
    """ONVIF session was not established within the connect timeout."""

    def __init__(self, camera_id: str, timeout_s: float) -> None:
        super().__init__(
            f"Failed to connect to ONVIF interface of {camera_id} after {timeout_s:.1f}s",
            camera_id=camera_id,
        )
        self.timeout_s = timeout_s


class ConnectError(DiscoveryError):
    """ONVIF session reported an error while connecting or resolving the stream."""

    def __init__(self, camera_id: str, cause: Exception) -> None:
        super().__init__(
            f"ONVIF setup failed for {camera_id}: {cause}",
            camera_id=camera_id,
            cause=cause,
        )


class ProcessSpawnError(StreamProxyError):
    """Transcoder process could not be spawned."""


class UsageError(StreamProxyError):
    """Supervisor lifecycle method called in the wrong state."""
