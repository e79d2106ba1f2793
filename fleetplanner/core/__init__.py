"""
Core module for FleetPlanner.

Contains the building blocks shared by every other module:
- Geometry (Vector3, route lengths)
- Mission configuration loaded from YAML
- Messages exchanged with agents and clients
"""

from fleetplanner.core.geometry import Vector3, route_length
from fleetplanner.core.config import (
    MissionConfig,
    PlannerSettings,
    HumanTarget,
    Tool,
)
from fleetplanner.core.message import (
    MessageType,
    TaskOutcome,
    AgentBeacon,
    PlannerBeacon,
    DispatchMessage,
    DispatchAck,
    TaskResultMessage,
    NewTaskRequest,
)

__all__ = [
    # Geometry
    "Vector3",
    "route_length",
    # Config
    "MissionConfig",
    "PlannerSettings",
    "HumanTarget",
    "Tool",
    # Messages
    "MessageType",
    "TaskOutcome",
    "AgentBeacon",
    "PlannerBeacon",
    "DispatchMessage",
    "DispatchAck",
    "TaskResultMessage",
    "NewTaskRequest",
]
