"""WebSocket message schemas exchanged with viewers."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from streamproxy.camera import PtzVector
from streamproxy.supervisor.ring_log import LogEntry


class PingCommand(BaseModel):
    type: Literal["ping"]


class StateCommand(BaseModel):
    type: Literal["state"]


class TargetLatencyCommand(BaseModel):
    type: Literal["target_latency_secs"]
    stream_id: str
    value: float = Field(gt=0.0)


class RestartCommand(BaseModel):
    type: Literal["restart"]
    stream_id: str


class PtzRelativeCommand(BaseModel):
    type: Literal["ptz_relative"]
    stream_id: str
    value: PtzVector


class PtzHomeCommand(BaseModel):
    type: Literal["ptz_home"]
    stream_id: str


ViewerCommand = Annotated[
    PingCommand
    | StateCommand
    | TargetLatencyCommand
    | RestartCommand
    | PtzRelativeCommand
    | PtzHomeCommand,
    Field(discriminator="type"),
]
VIEWER_COMMAND_ADAPTER: TypeAdapter[ViewerCommand] = TypeAdapter(ViewerCommand)
KNOWN_COMMAND_TYPES = frozenset(
    {"ping", "state", "target_latency_secs", "restart", "ptz_relative", "ptz_home"}
)


class LogMessage(BaseModel):
    """A new line captured from one camera's transcoder."""

    type: Literal["log"] = "log"
    id: str
    entry: LogEntry


class SourceState(BaseModel):
    id: str
    log_messages: list[LogEntry] = Field(serialization_alias="logMessages")
    status: str = "ok"


class StateMessage(BaseModel):
    """Full snapshot sent to a viewer that asked for it."""

    type: Literal["state"] = "state"
    source_states: list[SourceState] = Field(serialization_alias="sourceStates")


class TargetLatencyMessage(BaseModel):
    """Latency change made by another viewer."""

    type: Literal["target_latency_secs"] = "target_latency_secs"
    id: str
    value: float


OutboundMessage = LogMessage | StateMessage | TargetLatencyMessage


def encode_message(message: OutboundMessage) -> str:
    return message.model_dump_json(by_alias=True)
