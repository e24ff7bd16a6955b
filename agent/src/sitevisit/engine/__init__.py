"""Engine module wiring the queue, coordinator and connectivity checks."""

from sitevisit.engine.orchestrator import SyncOrchestrator

__all__ = ["SyncOrchestrator"]
