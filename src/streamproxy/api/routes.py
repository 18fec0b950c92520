"""HTTP and WebSocket routes for viewers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, cast

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from streamproxy.fanout.hub import ViewerSession

if TYPE_CHECKING:
    from streamproxy.app import Application

logger = logging.getLogger(__name__)

router = APIRouter()


class SourceInfo(BaseModel):
    id: str
    latency: float


class HealthResponse(BaseModel):
    status: str
    fleet_running: bool
    viewers: int
    cameras: dict[str, str]
    supervisors: dict[str, str]


def _application(scope: Request | WebSocket) -> Application:
    return cast("Application", scope.app.state.streamproxy)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    app = _application(request)
    return HealthResponse(
        status="ok",
        fleet_running=app.orchestrator.fleet_running,
        viewers=app.fanout.viewer_count,
        cameras={s.camera_id: str(s.camera.state) for s in app.supervisors},
        supervisors={s.camera_id: str(s.state) for s in app.supervisors},
    )


@router.get("/api/sources", response_model=list[SourceInfo])
async def list_sources(request: Request) -> list[SourceInfo]:
    app = _application(request)
    return [
        SourceInfo(id=s.camera_id, latency=s.camera.config.target_latency_secs)
        for s in app.supervisors
    ]


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket) -> None:
    fanout = _application(websocket).fanout
    # registered before the handshake completes so no broadcast is missed
    session = fanout.connect()
    sender: asyncio.Task[None] | None = None
    try:
        await websocket.accept()
        sender = asyncio.create_task(_send_queued(websocket, session))
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is not None:
                fanout.handle_message(session, raw)
    except WebSocketDisconnect:
        pass
    finally:
        fanout.disconnect(session)
        if sender is not None:
            sender.cancel()
            with suppress(asyncio.CancelledError):
                await sender


async def _send_queued(websocket: WebSocket, session: ViewerSession) -> None:
    while True:
        payload = await session.next_message()
        try:
            await websocket.send_text(payload)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Viewer session %d send failed: %s", session.id, exc)
            return
