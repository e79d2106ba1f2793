"""
Read-only mission catalogs.

The catalog wraps a MissionConfig and answers the questions the rest of the
planner asks about the world:
- Does a task reference only known resources?
- Which points does a task visit, starting from a given origin?
- Where does an agent return to, and how much battery does a trip cost?

Agent records and the cost evaluator receive the catalog as a parameter;
nothing holds a reference back to the coordinator.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from loguru import logger

from fleetplanner.core.config import (
    BASES,
    CHARGING_STATIONS,
    WAYPOINTS,
    MissionConfig,
    PlannerSettings,
)
from fleetplanner.core.geometry import Vector3, nearest, route_length
from fleetplanner.errors import InvalidTaskParams
from fleetplanner.planning.task import (
    DeliverParams,
    InspectParams,
    MonitorParams,
    RechargeParams,
    Task,
    TaskParams,
)


class MissionCatalog:
    """Resource catalogs and battery model for one mission."""

    def __init__(self, config: MissionConfig):
        self.config = config
        self.settings: PlannerSettings = config.settings

        self._human_targets: Dict[str, Vector3] = {
            tid: target.position_vec for tid, target in config.human_targets.items()
        }
        self._tools: Dict[str, Vector3] = {
            tid: tool.position_vec for tid, tool in config.tools.items()
        }
        self._waypoints = config.positions(WAYPOINTS)
        self._stations = config.positions(CHARGING_STATIONS)
        self._bases = config.positions(BASES)

        station = self.settings.default_charging_station
        if station is not None and station not in self._stations:
            raise InvalidTaskParams(f"unknown default charging station '{station}'")

    @property
    def mission_id(self) -> str:
        return self.config.mission_id

    @property
    def charging_stations(self) -> Dict[str, Vector3]:
        return dict(self._stations)

    # ========== Validation ==========

    def validate(self, params: TaskParams) -> None:
        """
        Check that every resource referenced by the params exists.

        Raises:
            InvalidTaskParams: naming the first unknown reference
        """
        if isinstance(params, DeliverParams):
            self._require(self._tools, params.tool_id, "tool")
            self._require(self._human_targets, params.human_target_id, "human target")
        elif isinstance(params, InspectParams):
            for name in params.waypoints:
                self._require(self._waypoints, name, "waypoint")
        elif isinstance(params, MonitorParams):
            self._require(self._human_targets, params.human_target_id, "human target")
            for name in params.waypoints:
                self._require(self._waypoints, name, "waypoint")
        elif isinstance(params, RechargeParams):
            if params.charging_station is not None:
                self._require(self._stations, params.charging_station, "charging station")
            elif not self._stations:
                raise InvalidTaskParams("no charging stations are configured")

    @staticmethod
    def _require(catalog: Dict[str, Vector3], key: str, what: str) -> None:
        if key not in catalog:
            raise InvalidTaskParams(f"unknown {what} '{key}'")

    # ========== Geometry ==========

    def route(self, task: Task, origin: Vector3) -> List[Vector3]:
        """
        Ordered points visited while executing a task.

        Args:
            task: Task to resolve (params must already be validated)
            origin: Where the agent starts the task from; only used to
                pick the nearest charging station for recharge tasks

        Returns:
            Non-empty list of points; the first is the task start
        """
        params = task.params

        if isinstance(params, DeliverParams):
            return [self._tools[params.tool_id], self._human_targets[params.human_target_id]]

        if isinstance(params, InspectParams):
            return [self._waypoints[name] for name in params.waypoints]

        if isinstance(params, MonitorParams):
            if not params.waypoints:
                return [self._human_targets[params.human_target_id]]
            orbit = [self._waypoints[name] for name in params.waypoints]
            return orbit * params.laps

        return [self._stations[self.charging_station_for(params, origin)]]

    def charging_station_for(self, params: RechargeParams, origin: Vector3) -> str:
        if params.charging_station is not None:
            return params.charging_station
        if self.settings.default_charging_station is not None:
            return self.settings.default_charging_station
        return nearest(origin, self._stations)

    def end_position(self, task: Task, origin: Vector3) -> Vector3:
        return self.route(task, origin)[-1]

    def home(self, agent_id: str, fallback: Vector3) -> Vector3:
        """
        Position an agent returns to when its queue is done.

        Uses the agent's configured base, else the nearest charging station,
        else the fallback itself (no return leg).
        """
        if agent_id in self._bases:
            return self._bases[agent_id]
        if self._stations:
            return self._stations[nearest(fallback, self._stations)]
        return fallback

    # ========== Battery ==========

    def consumption(self, distance: float, num_tasks: int = 0) -> float:
        """Battery fraction needed to travel a distance and execute tasks."""
        return (distance * self.settings.consumption_per_meter +
                num_tasks * self.settings.consumption_per_task)

    def trip_length(self, origin: Vector3, tasks: List[Task]) -> tuple:
        """
        Length of executing the tasks in order from origin.

        Returns:
            (distance, end position)
        """
        distance = 0.0
        position = origin
        for task in tasks:
            points = self.route(task, position)
            distance += route_length([position] + points)
            position = points[-1]
        return distance, position

    def describe(self) -> Dict[str, int]:
        summary = {
            "human_targets": len(self._human_targets),
            "tools": len(self._tools),
            "waypoints": len(self._waypoints),
            "charging_stations": len(self._stations),
            "bases": len(self._bases),
        }
        logger.debug(f"Catalog for {self.mission_id}: {summary}")
        return summary
