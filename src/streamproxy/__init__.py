"""Viewer-driven camera stream supervisor."""

__version__ = "0.1.0"

# Export commonly used types
from streamproxy.address import ConnectionAddress
from streamproxy.errors import (
    ConfigurationError,
    ConnectError,
    ConnectTimeoutError,
    MalformedAddressError,
    ProcessSpawnError,
    StreamProxyError,
    UsageError,
)

__all__ = [
    "ConfigurationError",
    "ConnectError",
    "ConnectTimeoutError",
    "ConnectionAddress",
    "MalformedAddressError",
    "ProcessSpawnError",
    "StreamProxyError",
    "UsageError",
    "__version__",
]
