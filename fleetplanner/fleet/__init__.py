"""
Fleet module for FleetPlanner.

Planner-side agent records and beacon liveness tracking.
"""

from fleetplanner.fleet.agent_record import AgentRecord, Capability, Liveness
from fleetplanner.fleet.liveness import LivenessEvent, LivenessEventType, LivenessMonitor

__all__ = [
    "AgentRecord",
    "Capability",
    "Liveness",
    "LivenessEvent",
    "LivenessEventType",
    "LivenessMonitor",
]
