"""
Greedy batch task allocation.

Each allocation pass walks the pending tasks (grouped by kind, oldest first)
and appends every task to the alive, capable agent with the lowest feasible
cost. Tasks without a feasible candidate stay pending and are retried on
the next pass; that is a stall, not an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from fleetplanner.fleet.agent_record import AgentRecord
from fleetplanner.planning.cost import Cost, CostEvaluator
from fleetplanner.planning.task import Task, TaskKind


KIND_ORDER = (TaskKind.DELIVER, TaskKind.INSPECT, TaskKind.MONITOR, TaskKind.RECHARGE)


@dataclass
class Assignment:
    """One task appended to one agent's queue."""

    task_id: str
    agent_id: str
    cost: float


@dataclass
class AllocationResult:
    """Result of one allocation pass."""

    pass_number: int = 0
    assignments: List[Assignment] = field(default_factory=list)

    # task_id -> reason it stayed pending
    stalled: Dict[str, str] = field(default_factory=dict)

    @property
    def num_assigned(self) -> int:
        return len(self.assignments)

    @property
    def touched_agents(self) -> List[str]:
        """Agents whose queue grew, in first-assignment order."""
        seen: List[str] = []
        for a in self.assignments:
            if a.agent_id not in seen:
                seen.append(a.agent_id)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass_number": self.pass_number,
            "assignments": [
                {"task_id": a.task_id, "agent_id": a.agent_id, "cost": a.cost}
                for a in self.assignments
            ],
            "stalled": dict(self.stalled),
        }


class Allocator:
    """
    Deterministic greedy allocator.

    Complexity is O(tasks x agents) per pass; fleets and pending sets are
    expected to be in the tens.
    """

    def __init__(self, evaluator: CostEvaluator):
        """
        Initialize allocator.

        Args:
            evaluator: Cost function used to rank candidates
        """
        self.evaluator = evaluator

        self._passes = 0
        self._total_assigned = 0
        self._total_stalls = 0

    @staticmethod
    def order_tasks(tasks: Iterable[Task]) -> List[Task]:
        """Partition by kind, oldest first within a kind."""
        by_kind: Dict[TaskKind, List[Task]] = {kind: [] for kind in KIND_ORDER}
        for task in tasks:
            by_kind[task.kind].append(task)

        ordered: List[Task] = []
        for kind in KIND_ORDER:
            ordered.extend(sorted(by_kind[kind], key=lambda t: (t.sequence, t.task_id)))
        return ordered

    def candidates(self, task: Task, agents: Iterable[AgentRecord]) -> List[AgentRecord]:
        """Alive agents whose capability serves the task kind."""
        return [
            agent for agent in agents
            if agent.is_alive and agent.capability.can_serve(task.kind)
        ]

    def best_agent(self, task: Task, agents: Iterable[AgentRecord]) -> Optional[Cost]:
        """Lowest feasible cost for the task, or None."""
        best: Optional[Cost] = None
        for agent in self.candidates(task, agents):
            cost = self.evaluator.cost(agent, task)
            if cost is None:
                continue
            logger.debug(f"Task {task.task_id}: {agent.agent_id} costs {cost.value:.2f}")
            if best is None or cost < best:
                best = cost
        return best

    def allocate(
        self,
        pending_tasks: Dict[str, Task],
        agents: Dict[str, AgentRecord]
    ) -> AllocationResult:
        """
        Run one allocation pass.

        Assigned tasks are appended to the chosen agent's queue and removed
        from ``pending_tasks``; the caller owns transaction bookkeeping for
        the touched agents (see ``before_assign``).

        Args:
            pending_tasks: task_id -> task, mutated in place
            agents: agent_id -> record, queues mutated in place

        Returns:
            Assignments made and tasks left pending
        """
        self._passes += 1
        result = AllocationResult(pass_number=self._passes)

        if not pending_tasks:
            return result

        for task in self.order_tasks(list(pending_tasks.values())):
            candidates = self.candidates(task, agents.values())
            if not candidates:
                result.stalled[task.task_id] = "no alive agent with a matching capability"
                continue

            best = self.best_agent(task, candidates)
            if best is None:
                result.stalled[task.task_id] = "no candidate has enough battery"
                continue

            agent = agents[best.agent_id]
            self.before_assign(agent)
            agent.add_task_to_queue(task)
            del pending_tasks[task.task_id]

            result.assignments.append(Assignment(
                task_id=task.task_id,
                agent_id=agent.agent_id,
                cost=best.value,
            ))
            logger.info(f"Assigned task {task.task_id} ({task.kind.value}) to agent "
                        f"{agent.agent_id} at cost {best.value:.2f}")

        self._total_assigned += result.num_assigned
        self._total_stalls += len(result.stalled)

        for task_id, reason in result.stalled.items():
            logger.warning(f"Allocation stall: task {task_id} stays pending ({reason})")

        return result

    def before_assign(self, agent: AgentRecord) -> None:
        """Hook run before an agent's queue is extended."""
        agent.set_old_task_queue()

    def get_statistics(self) -> Dict[str, Any]:
        """Get allocator statistics."""
        return {
            "passes": self._passes,
            "total_assigned": self._total_assigned,
            "total_stalls": self._total_stalls,
        }
