"""Shared pytest fixtures for streamproxy tests."""

from __future__ import annotations

import sys
from pathlib import Path

# Add src to sys.path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path.resolve()) not in sys.path:
    sys.path.insert(0, str(src_path.resolve()))

import pytest

from streamproxy.camera import Camera
from tests.streamproxy.mocks import rtsp_source


@pytest.fixture
async def resolved_camera() -> Camera:
    """An RTSP camera whose address is already resolved."""
    camera = Camera(rtsp_source("front", url="rtsp://user:pw@10.0.0.5:554/stream1"))
    await camera.setup()
    return camera

