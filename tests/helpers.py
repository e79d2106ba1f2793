"""Helpers shared by the planner tests."""

from fleetplanner.core.config import MissionConfig, PlannerSettings
from fleetplanner.core.geometry import Vector3
from fleetplanner.core.message import AgentBeacon


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(with_dock: bool = True, **settings) -> MissionConfig:
    """
    Small mission on a grid:

    dock at the origin, alice and kit on the x axis, bob and radio on the
    y axis, three waypoints on a 20 m square.
    """
    stations = {"dock": [0.0, 0.0, 0.0]} if with_dock else {}
    return MissionConfig(
        mission_id="test_mission",
        settings=PlannerSettings(**settings),
        human_targets={
            "alice": {"position": [10.0, 0.0, 0.0]},
            "bob": {"position": [0.0, 10.0, 0.0]},
        },
        tools={
            "kit": {"position": [5.0, 0.0, 0.0], "weight": 0.5},
            "radio": {"position": [0.0, 5.0, 0.0]},
        },
        known_positions={
            "waypoints": {
                "wp_a": [20.0, 0.0, 0.0],
                "wp_b": [20.0, 20.0, 0.0],
                "wp_c": [0.0, 20.0, 0.0],
            },
            "charging_stations": stations,
        },
    )


def beacon(coordinator, agent_id, capability, position, battery=1.0, now=None):
    """Send a beacon for an agent at the given [x, y, z]."""
    return coordinator.beacon(
        AgentBeacon(agent_id, capability, Vector3.from_list(position), battery),
        now=now,
    )


DELIVER_KIT_TO_ALICE = {"kind": "deliver", "tool_id": "kit", "human_target_id": "alice"}
DELIVER_RADIO_TO_BOB = {"kind": "deliver", "tool_id": "radio", "human_target_id": "bob"}
INSPECT_SQUARE = {"kind": "inspect", "waypoints": ["wp_a", "wp_b", "wp_c"]}
