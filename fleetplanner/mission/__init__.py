"""
Mission module for FleetPlanner.

The coordinator owning the mission registries, the resource catalog it
validates against, and the transport/runtime that connect it to the fleet.
"""

from fleetplanner.mission.catalog import MissionCatalog
from fleetplanner.mission.transport import AgentTransport, AckPolicy, InMemoryTransport
from fleetplanner.mission.coordinator import MissionCoordinator
from fleetplanner.mission.runtime import MissionRuntime

__all__ = [
    "MissionCatalog",
    "AgentTransport",
    "AckPolicy",
    "InMemoryTransport",
    "MissionCoordinator",
    "MissionRuntime",
]
