"""
FleetPlanner: task allocation and liveness tracking for robotic fleets.

This package provides:
- Greedy cost-based task allocation with battery feasibility gating
- Per-agent task queues with transactional reassignment
- Beacon-driven liveness tracking and automatic task recovery
- A lock-guarded mission coordinator and an asyncio runtime around it
"""

__version__ = "0.3.0"

from fleetplanner.core.config import MissionConfig, PlannerSettings
from fleetplanner.core.geometry import Vector3
from fleetplanner.planning.task import Task, TaskKind, TaskStatus
from fleetplanner.planning.allocator import Allocator, AllocationResult
from fleetplanner.fleet.agent_record import AgentRecord, Capability, Liveness
from fleetplanner.mission.coordinator import MissionCoordinator
from fleetplanner.mission.runtime import MissionRuntime

__all__ = [
    "__version__",
    # Configuration
    "MissionConfig",
    "PlannerSettings",
    "Vector3",
    # Tasks and allocation
    "Task",
    "TaskKind",
    "TaskStatus",
    "Allocator",
    "AllocationResult",
    # Fleet
    "AgentRecord",
    "Capability",
    "Liveness",
    # Mission
    "MissionCoordinator",
    "MissionRuntime",
]
