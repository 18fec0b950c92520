"""Test doubles for streamproxy collaborators."""

from tests.streamproxy.mocks.discovery import FakeDiscoverySession, FakeSessionFactory
from tests.streamproxy.mocks.sources import HARNESS_COMMAND, onvif_source, rtsp_source, wait_until
from tests.streamproxy.mocks.supervisor import FakeSupervisor

__all__ = [
    "FakeDiscoverySession",
    "FakeSessionFactory",
    "FakeSupervisor",
    "HARNESS_COMMAND",
    "onvif_source",
    "rtsp_source",
    "wait_until",
]
