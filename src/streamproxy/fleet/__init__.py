"""Fleet-wide start/stop orchestration."""

from streamproxy.fleet.orchestrator import FleetOrchestrator, TransitionKind

__all__ = ["FleetOrchestrator", "TransitionKind"]
