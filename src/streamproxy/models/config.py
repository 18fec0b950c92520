"""Configuration models for the camera fleet."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from streamproxy.address import ConnectionAddress
from streamproxy.supervisor.process import DEFAULT_STOP_TIMEOUT_S, DEFAULT_TRANSCODER_COMMAND
from streamproxy.supervisor.ring_log import DEFAULT_LOG_CAPACITY

DEFAULT_TARGET_LATENCY_SECS = 4.0


def _validate_address(value: str) -> str:
    ConnectionAddress.parse(value)
    return value


class OnvifSourceConfig(BaseModel):
    """ONVIF discovery endpoint; credentials in the URL are used for the stream too."""

    url: str
    profile: str | None = None
    protocol: str | None = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_address(value)


class RtspSourceConfig(BaseModel):
    """Direct stream address, passed to the transcoder verbatim."""

    url: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_address(value)


class StreamSourceConfig(BaseModel):
    """One camera. ONVIF takes precedence when both sources are configured."""

    id: str
    target_latency_secs: float = Field(default=DEFAULT_TARGET_LATENCY_SECS, gt=0.0)
    onvif: OnvifSourceConfig | None = None
    rtsp: RtspSourceConfig | None = None

    @field_validator("target_latency_secs", mode="before")
    @classmethod
    def _default_latency(cls, value: object) -> object:
        # 0 and null both mean "use the default"
        if value is None or value == 0:
            return DEFAULT_TARGET_LATENCY_SECS
        return value

    @model_validator(mode="after")
    def _require_source(self) -> StreamSourceConfig:
        if self.onvif is None and self.rtsp is None:
            raise ValueError(
                f"source '{self.id}' must contain at least an onvif or an rtsp configuration"
            )
        return self


class TranscoderConfig(BaseModel):
    """External transcoder invocation and supervision settings."""

    command: list[str] = Field(default_factory=lambda: list(DEFAULT_TRANSCODER_COMMAND), min_length=1)
    stop_timeout_s: float = Field(default=DEFAULT_STOP_TIMEOUT_S, gt=0.0)
    log_capacity: int = Field(default=DEFAULT_LOG_CAPACITY, ge=1)


class FleetConfig(BaseModel):
    """Viewer-driven fleet start/stop settings."""

    idle_timeout_s: float = Field(default=60.0, gt=0.0)
    tick_interval_s: float = Field(default=1.0, gt=0.0)
    connect_timeout_s: float = Field(default=5.0, gt=0.0)


class ServerConfig(BaseModel):
    """HTTP/WebSocket server settings."""

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    static_dir: str | None = None
    serve_streams: bool = True


class Config(BaseModel):
    """Root configuration."""

    output_path: str
    sources: list[StreamSourceConfig]
    transcoder: TranscoderConfig = Field(default_factory=TranscoderConfig)
    fleet: FleetConfig = Field(default_factory=FleetConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @model_validator(mode="after")
    def _validate_unique_ids(self) -> Config:
        seen: set[str] = set()
        duplicates: list[str] = []
        for source in self.sources:
            if source.id in seen and source.id not in duplicates:
                duplicates.append(source.id)
            seen.add(source.id)
        if duplicates:
            raise ValueError(f"source ids must be unique, duplicated: {', '.join(duplicates)}")
        return self
