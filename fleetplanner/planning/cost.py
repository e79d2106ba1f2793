"""
Cost evaluation for agent/task pairs.

The cost of giving a task to an agent is the travel needed to reach and
execute it from wherever the agent will be once its current queue is done,
plus a penalty per already queued task so lightly loaded agents win ties on
distance. Infeasible pairs (wrong capability, not enough battery) have no
cost at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import total_ordering
from typing import TYPE_CHECKING, List, Optional

from loguru import logger

from fleetplanner.core.config import PlannerSettings
from fleetplanner.core.geometry import Vector3, route_length
from fleetplanner.fleet.agent_record import AgentRecord
from fleetplanner.planning.task import Task

if TYPE_CHECKING:
    from fleetplanner.mission.catalog import MissionCatalog


@total_ordering
@dataclass(frozen=True)
class Cost:
    """
    Comparable cost of an assignment.

    Ordered by value, then by agent id so equal costs always resolve to
    the same agent.
    """

    value: float
    agent_id: str

    def _key(self):
        return (self.value, self.agent_id)

    def __lt__(self, other: Cost) -> bool:
        if not isinstance(other, Cost):
            return NotImplemented
        return self._key() < other._key()


class CostOracle(ABC):
    """
    External travel-cost estimator (e.g. a heuristic path planner).

    Returning None means "no opinion"; the evaluator then falls back to
    straight-line distance.
    """

    @abstractmethod
    def estimate(self, origin: Vector3, route: List[Vector3]) -> Optional[float]:
        """Estimate the cost of travelling from origin through the route."""
        pass


class StraightLineOracle(CostOracle):
    """Polyline distance through the route."""

    def estimate(self, origin: Vector3, route: List[Vector3]) -> Optional[float]:
        return route_length([origin] + route)


class CostEvaluator:
    """
    Pure cost function over (agent, task).

    Reads registry state at call time and never mutates it.
    """

    def __init__(
        self,
        catalog: MissionCatalog,
        oracle: Optional[CostOracle] = None
    ):
        """
        Initialize evaluator.

        Args:
            catalog: Mission catalog (routes, battery model, settings)
            oracle: Optional refined travel estimator
        """
        self.catalog = catalog
        self.oracle = oracle

    @property
    def settings(self) -> PlannerSettings:
        return self.catalog.settings

    def is_feasible(self, agent: AgentRecord, task: Task) -> bool:
        """Capability match and battery gate."""
        if not agent.capability.can_serve(task.kind):
            return False
        return agent.is_battery_enough(task, self.catalog)

    def cost(self, agent: AgentRecord, task: Task) -> Optional[Cost]:
        """
        Cost of appending the task to the agent's queue.

        Returns:
            Cost, or None if the pair is infeasible
        """
        if not self.is_feasible(agent, task):
            return None

        origin = agent.tail_position(self.catalog)
        route = self.catalog.route(task, origin)

        travel = None
        if self.oracle is not None:
            try:
                travel = self.oracle.estimate(origin, route)
            except Exception as e:
                logger.warning(f"Cost oracle failed for {agent.agent_id}/{task.task_id}: {e}")
                travel = None

        if travel is None:
            travel = route_length([origin] + route)

        value = travel + self.settings.queue_penalty * agent.get_queue_size()
        return Cost(value=float(value), agent_id=agent.agent_id)
