"""
Planner-side record of one physical agent.

The record mirrors what the planner knows about an agent: its capability,
last reported position and battery, liveness, and the ordered queue of tasks
it owns. Queue changes made during a reallocation are transactional: the
queue is snapshotted into a shadow copy first, so a rejected dispatch can
restore it exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger

from fleetplanner.core.geometry import Vector3, route_length
from fleetplanner.planning.task import Task, TaskKind


class Capability(Enum):
    """Task kind an agent can serve (every agent can also recharge)."""
    DELIVER = "deliver"
    INSPECT = "inspect"
    MONITOR = "monitor"

    def can_serve(self, kind: TaskKind) -> bool:
        return kind == TaskKind.RECHARGE or kind.value == self.value


class Liveness(Enum):
    """Beacon-recency state of an agent."""
    ALIVE = "alive"
    SUSPECTED_LOST = "suspected_lost"
    LOST = "lost"


@dataclass
class AgentRecord:
    """
    Mirror of one agent, owning its task queue.

    Battery checks take the mission catalog as a parameter so the record
    never reaches back into the coordinator.
    """

    agent_id: str
    capability: Capability

    # Last known state
    position: Vector3 = field(default_factory=Vector3)
    battery_fraction: float = 1.0
    last_beacon_time: float = 0.0
    liveness: Liveness = Liveness.ALIVE

    # Queue, head first
    queue: List[Task] = field(default_factory=list)
    shadow_queue: List[Task] = field(default_factory=list)

    # Dispatch bookkeeping
    dispatch_sequence: int = 0
    acked_sequence: int = 0
    _in_transaction: bool = field(default=False, repr=False)

    # ========== Queue ==========

    def is_queue_empty(self) -> bool:
        return not self.queue

    def get_queue_size(self) -> int:
        return len(self.queue)

    def get_first_task(self) -> Optional[Task]:
        return self.queue[0] if self.queue else None

    def get_last_task(self) -> Optional[Task]:
        return self.queue[-1] if self.queue else None

    def is_task_in_queue(self, task_id: str) -> bool:
        return any(t.task_id == task_id for t in self.queue)

    def add_task_to_queue(self, task: Task) -> None:
        """Append a task at the tail and mark it queued for this agent."""
        self.queue.append(task)
        task.mark_queued(self.agent_id)

    def push_front(self, task: Task) -> None:
        self.queue.insert(0, task)
        task.mark_queued(self.agent_id)

    def replace_task_from_queue(self, task_id: str) -> Optional[Task]:
        """
        Remove a task by id, keeping the relative order of the others.

        Returns:
            The removed task, or None if it was not queued here
        """
        for i, task in enumerate(self.queue):
            if task.task_id == task_id:
                return self.queue.pop(i)
        return None

    def pop_first_task(self) -> Optional[Task]:
        if not self.queue:
            return None
        return self.queue.pop(0)

    def empty_the_queue(self) -> List[Task]:
        """Remove and return every queued task, head first."""
        released = self.queue
        self.queue = []
        return released

    # ========== Reassignment transaction ==========

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def set_old_task_queue(self) -> None:
        """
        Snapshot the queue before it is mutated.

        A snapshot taken by an earlier, still unacknowledged dispatch is
        kept: rolling back always returns to the last committed queue.
        """
        if self._in_transaction:
            return
        self.shadow_queue = list(self.queue)
        self._in_transaction = True

    def delete_old_task_queue(self) -> None:
        """Commit: the mutated queue was accepted by the agent."""
        self.shadow_queue = []
        self._in_transaction = False

    def restore_old_task_queue(self) -> List[Task]:
        """
        Roll back to the snapshot.

        Returns:
            Tasks that were in the queue but not in the snapshot; the
            caller owns them again
        """
        if not self._in_transaction:
            return []

        kept_ids = {t.task_id for t in self.shadow_queue}
        dropped = [t for t in self.queue if t.task_id not in kept_ids]

        self.queue = self.shadow_queue
        self.shadow_queue = []
        self._in_transaction = False
        return dropped

    def forget_shadow_task(self, task_id: str) -> None:
        """Drop a finished task from the snapshot so a rollback cannot revive it."""
        self.shadow_queue = [t for t in self.shadow_queue if t.task_id != task_id]

    def next_dispatch_sequence(self) -> int:
        self.dispatch_sequence += 1
        return self.dispatch_sequence

    # ========== Battery feasibility ==========

    def tail_position(self, catalog) -> Vector3:
        """Where the agent will be once its current queue is done."""
        _, end = catalog.trip_length(self.position, self.queue)
        return end

    def is_battery_for_queue(self, catalog) -> bool:
        """
        Check that the battery covers the whole queue plus return to base.

        Every queued task is costed in order from the current position; the
        projected battery at the end must stay above the reserve.
        """
        distance, end = catalog.trip_length(self.position, self.queue)
        home = catalog.home(self.agent_id, end)
        distance += end.distance_to(home)

        needed = catalog.consumption(distance, len(self.queue))
        projected = self.battery_fraction - needed

        if projected < catalog.settings.battery_reserve:
            logger.debug(f"Agent {self.agent_id}: queue needs {needed:.3f}, "
                         f"projected battery {projected:.3f}")
            return False
        return True

    def is_battery_enough(self, task: Task, catalog) -> bool:
        """
        Check a single candidate task against the current battery.

        Ignores the rest of the queue. Recharge tasks only need enough to
        reach the station; every other task must leave the reserve intact
        after returning to base.
        """
        points = catalog.route(task, self.position)
        distance = route_length([self.position] + points)

        if task.kind == TaskKind.RECHARGE:
            return self.battery_fraction - catalog.consumption(distance) >= 0.0

        home = catalog.home(self.agent_id, points[-1])
        distance += points[-1].distance_to(home)

        projected = self.battery_fraction - catalog.consumption(distance, 1)
        return projected >= catalog.settings.battery_reserve

    # ========== Beacons ==========

    def update_from_beacon(self, position: Vector3, battery_fraction: float, now: float) -> None:
        self.position = position
        self.battery_fraction = min(1.0, max(0.0, battery_fraction))
        self.last_beacon_time = now

    @property
    def is_alive(self) -> bool:
        return self.liveness == Liveness.ALIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "agent_id": self.agent_id,
            "capability": self.capability.value,
            "position": self.position.to_list(),
            "battery_fraction": self.battery_fraction,
            "last_beacon_time": self.last_beacon_time,
            "liveness": self.liveness.value,
            "queue": [t.task_id for t in self.queue],
            "in_transaction": self._in_transaction,
        }
