"""Control-plane public API."""

from deploy_sequencer.control_plane.orchestrator import Clock, DeploymentOrchestrator

__all__ = [
    "Clock",
    "DeploymentOrchestrator",
]
