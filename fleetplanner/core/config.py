"""
Mission configuration for the planner.

Defines the read-only inputs loaded once before the coordinator starts:
- Planner tunables (battery reserve, beacon timeout, queue penalty, ...)
- Resource catalogs (human targets, tools)
- Known positions grouped by purpose (waypoints, charging stations, bases)

Configurations are plain YAML files, e.g.::

    mission_id: harbour_01
    settings:
      battery_reserve: 0.25
      beacon_timeout: 4.0
    human_targets:
      victim_1: {position: [10, 4, 0]}
    tools:
      first_aid_kit: {position: [0, 1, 0], weight: 0.4}
    known_positions:
      waypoints:
        pier: [12, 0, 3]
      charging_stations:
        dock: [0, 0, 0]
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from fleetplanner.core.geometry import Vector3


WAYPOINTS = "waypoints"
CHARGING_STATIONS = "charging_stations"
BASES = "bases"


class PlannerSettings(BaseModel):
    """Tunables consumed by the cost evaluator and the liveness monitor."""

    # Battery feasibility
    battery_reserve: float = Field(default=0.2, ge=0.0, le=1.0)
    consumption_per_meter: float = Field(default=0.001, ge=0.0)  # fraction per meter
    consumption_per_task: float = Field(default=0.01, ge=0.0)    # fraction per executed task

    # Cost
    queue_penalty: float = Field(default=10.0, ge=0.0)           # cost units per queued task

    # Liveness
    beacon_timeout: float = Field(default=5.0, gt=0.0)           # seconds
    sweep_interval: float = Field(default=1.0, gt=0.0)           # seconds

    # Planner beacon
    planner_beacon_rate: float = Field(default=1.0, gt=0.0)      # Hz

    # Retries (0 = a failed task is always put back to pending)
    max_task_attempts: int = Field(default=0, ge=0)

    # Station used by the recharge template when none is named
    default_charging_station: Optional[str] = None


class HumanTarget(BaseModel):
    """A person the fleet delivers to or monitors."""

    position: List[float]
    description: str = ""

    @field_validator("position")
    @classmethod
    def _check_position(cls, value: List[float]) -> List[float]:
        return _validate_point(value)

    @property
    def position_vec(self) -> Vector3:
        return Vector3.from_list(self.position)


class Tool(BaseModel):
    """An item that can be picked up and delivered."""

    position: List[float]
    weight: float = Field(default=0.0, ge=0.0)  # kg

    @field_validator("position")
    @classmethod
    def _check_position(cls, value: List[float]) -> List[float]:
        return _validate_point(value)

    @property
    def position_vec(self) -> Vector3:
        return Vector3.from_list(self.position)


def _validate_point(value: List[float]) -> List[float]:
    if len(value) not in (2, 3):
        raise ValueError(f"position must have 2 or 3 coordinates, got {len(value)}")
    return [float(v) for v in value]


class MissionConfig(BaseModel):
    """
    Complete mission configuration.

    Supports serialization to/from YAML.
    """

    mission_id: str = "mission"
    settings: PlannerSettings = Field(default_factory=PlannerSettings)

    human_targets: Dict[str, HumanTarget] = Field(default_factory=dict)
    tools: Dict[str, Tool] = Field(default_factory=dict)

    # group -> name -> [x, y, z]
    known_positions: Dict[str, Dict[str, List[float]]] = Field(default_factory=dict)

    @field_validator("known_positions")
    @classmethod
    def _check_known_positions(
        cls,
        value: Dict[str, Dict[str, List[float]]]
    ) -> Dict[str, Dict[str, List[float]]]:
        return {
            group: {name: _validate_point(point) for name, point in points.items()}
            for group, points in value.items()
        }

    def positions(self, group: str) -> Dict[str, Vector3]:
        """Get the named positions of a group as vectors."""
        return {
            name: Vector3.from_list(point)
            for name, point in self.known_positions.get(group, {}).items()
        }

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> MissionConfig:
        """Load mission configuration from YAML file."""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        config = cls(**data)
        logger.info(
            f"Loaded mission {config.mission_id}: {len(config.human_targets)} human targets, "
            f"{len(config.tools)} tools, "
            f"{sum(len(p) for p in config.known_positions.values())} known positions"
        )
        return config

    def to_yaml(self, yaml_path: Union[str, Path]) -> None:
        """Save mission configuration to YAML file."""
        with open(yaml_path, 'w') as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)
