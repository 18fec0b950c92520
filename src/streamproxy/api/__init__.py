"""HTTP/WebSocket surface for viewers."""

from streamproxy.api.server import APIServer, create_app

__all__ = ["APIServer", "create_app"]
