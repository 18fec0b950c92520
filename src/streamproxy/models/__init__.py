"""streamproxy data models."""

from streamproxy.models.config import (
    Config,
    FleetConfig,
    OnvifSourceConfig,
    RtspSourceConfig,
    ServerConfig,
    StreamSourceConfig,
    TranscoderConfig,
)

__all__ = [
    "Config",
    "FleetConfig",
    "OnvifSourceConfig",
    "RtspSourceConfig",
    "ServerConfig",
    "StreamSourceConfig",
    "TranscoderConfig",
]
