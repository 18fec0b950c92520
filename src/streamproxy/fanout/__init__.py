"""Viewer session fan-out."""

from streamproxy.fanout.hub import EventFanout, ViewerSession

__all__ = ["EventFanout", "ViewerSession"]
