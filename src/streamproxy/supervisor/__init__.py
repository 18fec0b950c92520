"""Transcoder process supervision and output capture."""

from streamproxy.supervisor.process import ProcessSupervisor, SupervisorState
from streamproxy.supervisor.ring_log import LogChannel, LogEntry, RingLogBuffer

__all__ = ["LogChannel", "LogEntry", "ProcessSupervisor", "RingLogBuffer", "SupervisorState"]
