"""ONVIF session helpers."""

from streamproxy.onvif.client import OnvifCameraClient, OnvifMediaProfile

__all__ = ["OnvifCameraClient", "OnvifMediaProfile"]
