"""
Mission coordinator.

The coordinator is the single owner of the mission registries:
- agents: agent_id -> AgentRecord (created on first beacon)
- pending tasks plus a per-kind index of every live task
- the recharge task template and the read-only mission catalog

Every public handler runs under one lock and leaves the registries
consistent before returning. Dispatches produced by a handler are queued in
an outbox and sent by the caller after the handler has returned; nothing
here performs I/O.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Set, Union

import numpy as np
from loguru import logger

from fleetplanner.core.config import MissionConfig
from fleetplanner.core.message import (
    AgentBeacon,
    DispatchMessage,
    PlannerBeacon,
    TaskOutcome,
    TaskPayload,
)
from fleetplanner.errors import (
    InvalidBeacon,
    InvalidTaskParams,
    MissionOver,
    TaskNotAtHead,
    UnknownAgent,
    UnknownTask,
)
from fleetplanner.fleet.agent_record import AgentRecord, Capability, Liveness
from fleetplanner.fleet.liveness import LivenessEvent, LivenessEventType, LivenessMonitor
from fleetplanner.mission.catalog import MissionCatalog
from fleetplanner.planning.allocator import AllocationResult, Allocator
from fleetplanner.planning.cost import CostEvaluator, CostOracle
from fleetplanner.planning.task import (
    Task,
    TaskKind,
    TaskStatus,
    new_task_id,
    parse_task_spec,
    recharge_template,
)


class MissionCoordinator:
    """
    Planner for one mission.

    Handlers may be called from any thread; each one holds the registry
    lock for its whole duration. Use ``drain_dispatches()`` afterwards to
    collect the queues that must be sent to agents.
    """

    def __init__(
        self,
        config: MissionConfig,
        oracle: Optional[CostOracle] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize coordinator.

        Args:
            config: Mission configuration (catalogs and planner settings)
            oracle: Optional external travel-cost estimator
            clock: Time source for beacon ages
        """
        self.config = config
        self.settings = config.settings
        self.catalog = MissionCatalog(config)

        self.evaluator = CostEvaluator(self.catalog, oracle)
        self.allocator = Allocator(self.evaluator)
        self.liveness = LivenessMonitor(self.settings.beacon_timeout)

        self._clock = clock
        self._lock = threading.Lock()

        # Registries
        self.agents: Dict[str, AgentRecord] = {}
        self.pending_tasks: Dict[str, Task] = {}
        self._tasks: Dict[str, Task] = {}
        self._kind_index: Dict[TaskKind, Set[str]] = {kind: set() for kind in TaskKind}

        self.recharge_task = recharge_template(self.settings.default_charging_station)
        self._recharge_instances: Set[str] = set()

        self._mission_over = False
        self._next_sequence = 0
        self._outbox: List[DispatchMessage] = []
        self.last_allocation: Optional[AllocationResult] = None

        # Event handling
        self._event_handlers: List[Callable[[LivenessEvent], None]] = []

        # Statistics
        self._stats = {
            "tasks_received": 0,
            "tasks_rejected": 0,
            "tasks_succeeded": 0,
            "tasks_failed": 0,
            "task_failures_reported": 0,
            "tasks_cancelled": 0,
            "tasks_released": 0,
            "dispatches": 0,
            "dispatch_nacks": 0,
            "stale_reports": 0,
            "recharges_ordered": 0,
        }
        self._completion_times: List[float] = []

        logger.info(f"Mission coordinator ready for {self.catalog.mission_id}")

    @property
    def is_mission_over(self) -> bool:
        return self._mission_over

    def register_event_handler(self, handler: Callable[[LivenessEvent], None]) -> None:
        """Register handler for liveness events."""
        self._event_handlers.append(handler)

    # ========== Task ingestion ==========

    def incoming_task(self, spec: Union[Dict[str, Any], Any]) -> str:
        """
        Add a new task and run an allocation pass.

        Returns:
            The new task id

        Raises:
            InvalidTaskParams: if the spec is malformed or references an
                unknown human target, tool, waypoint or station
            MissionOver: if the mission has ended
        """
        with self._lock:
            if self._mission_over:
                raise MissionOver()

            try:
                params = parse_task_spec(spec)
                self.catalog.validate(params)
            except InvalidTaskParams as e:
                self._stats["tasks_rejected"] += 1
                logger.warning(f"Rejected task: {e.detail}")
                raise

            task_id = new_task_id()
            while task_id in self._tasks:
                task_id = new_task_id()

            task = Task(task_id=task_id, params=params, sequence=self._take_sequence())
            self._register(task)
            self.pending_tasks[task_id] = task
            self._stats["tasks_received"] += 1

            logger.info(f"New {task.kind.value} task {task_id}")

            self._allocation_pass()
            return task_id

    def update_task_params(self, task_id: str, spec: Union[Dict[str, Any], Any]) -> Task:
        """
        Replace the params of a pending task.

        The kind cannot change. No allocation pass runs; the new params are
        used by the next one.

        Raises:
            UnknownTask: if the task is not pending
            InvalidTaskParams: if the new params are invalid
        """
        with self._lock:
            task = self.pending_tasks.get(task_id)
            if task is None:
                raise UnknownTask(task_id)

            if isinstance(spec, dict) and "kind" not in spec:
                spec = {"kind": task.kind.value, **spec}

            params = parse_task_spec(spec)
            if params.kind != task.kind.value:
                raise InvalidTaskParams(
                    f"cannot change task {task_id} from {task.kind.value} to {params.kind}"
                )
            self.catalog.validate(params)

            task.params = params
            logger.info(f"Updated params of pending task {task_id}")
            return task

    def cancel_task(self, task_id: str) -> None:
        """
        Withdraw a task wherever it is.

        A queued task is removed from its agent's queue (other tasks keep
        their order) and the agent receives its new queue.

        Raises:
            UnknownTask: if the task is not live
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise UnknownTask(task_id)

            if task_id in self.pending_tasks:
                del self.pending_tasks[task_id]
            else:
                agent = self.agents.get(task.assigned_agent)
                if agent is None or not agent.is_task_in_queue(task_id):
                    raise UnknownTask(task_id)
                agent.set_old_task_queue()
                agent.replace_task_from_queue(task_id)
                self._dispatch(agent)

            self._retire(task)
            self._stats["tasks_cancelled"] += 1
            logger.info(f"Cancelled task {task_id}")

    # ========== Agent reports ==========

    def task_result(
        self,
        agent_id: str,
        task_id: str,
        outcome: Union[TaskOutcome, str]
    ) -> Task:
        """
        Handle the outcome of an agent's head task.

        Succeeded tasks are discarded. Failed tasks go back to pending, or
        become terminal once ``max_task_attempts`` is reached. An allocation
        pass follows either way.

        Raises:
            UnknownAgent: if the agent has no record
            TaskNotAtHead: if the report does not match the queue head
        """
        outcome = TaskOutcome(outcome)

        with self._lock:
            agent = self._require_agent(agent_id)

            head = agent.get_first_task()
            if head is None or head.task_id != task_id:
                self._stats["stale_reports"] += 1
                raise TaskNotAtHead(agent_id, task_id, head.task_id if head else None)

            agent.pop_first_task()
            agent.forget_shadow_task(task_id)

            if outcome == TaskOutcome.SUCCEEDED:
                head.mark_succeeded()
                self._retire(head)
                self._stats["tasks_succeeded"] += 1
                self._completion_times.append(self._clock() - head.created_time)
                logger.info(f"Agent {agent_id} completed task {task_id}")
            else:
                head.attempts += 1
                self._stats["task_failures_reported"] += 1
                limit = self.settings.max_task_attempts
                if limit and head.attempts >= limit:
                    head.mark_failed()
                    self._retire(head)
                    self._stats["tasks_failed"] += 1
                    logger.warning(f"Task {task_id} failed {head.attempts} times, giving up")
                else:
                    self._release(head)
                    logger.warning(f"Agent {agent_id} failed task {task_id} "
                                   f"(attempt {head.attempts}), back to pending")

            new_head = agent.get_first_task()
            if new_head is not None and not agent.in_transaction:
                if new_head.status == TaskStatus.QUEUED:
                    new_head.mark_in_progress()

            self._allocation_pass()
            return head

    def beacon(self, beacon: AgentBeacon, now: Optional[float] = None) -> AgentRecord:
        """
        Update (or create) an agent record from a beacon.

        A lost agent that beacons again is alive immediately; its previous
        queue is not given back. No allocation pass runs.

        Raises:
            InvalidBeacon: if an unknown agent reports an unknown capability
        """
        with self._lock:
            now = self._clock() if now is None else now

            agent = self.agents.get(beacon.agent_id)
            if agent is None:
                try:
                    capability = Capability(beacon.capability)
                except ValueError:
                    raise InvalidBeacon(beacon.agent_id,
                                        f"unknown capability '{beacon.capability}'") from None
                agent = AgentRecord(agent_id=beacon.agent_id, capability=capability)
                self.agents[agent.agent_id] = agent
                logger.info(f"Registered agent {agent.agent_id} ({capability.value})")
            elif beacon.capability != agent.capability.value:
                logger.warning(f"Agent {agent.agent_id} reports capability "
                               f"{beacon.capability}, keeping {agent.capability.value}")

            agent.update_from_beacon(beacon.position, beacon.battery_fraction, now)
            events = self.liveness.record_beacon(agent, now)

        for event in events:
            self._emit_event(event)
        return agent

    def dispatch_ack(self, agent_id: str, sequence: int, accepted: bool) -> bool:
        """
        Resolve the reassignment transaction of a dispatch.

        Acknowledgements of anything but the latest dispatch are ignored.

        Returns:
            True if the answer was applied
        """
        with self._lock:
            agent = self._require_agent(agent_id)

            if sequence != agent.dispatch_sequence or sequence <= agent.acked_sequence:
                logger.debug(f"Ignoring stale answer {sequence} from {agent_id} "
                             f"(latest {agent.dispatch_sequence})")
                return False
            # An accepted but unanswered earlier dispatch may be what the agent runs
            outstanding = sequence - agent.acked_sequence
            agent.acked_sequence = sequence

            if accepted:
                agent.delete_old_task_queue()
                head = agent.get_first_task()
                if head is not None and head.status == TaskStatus.QUEUED:
                    head.mark_in_progress()
                return True

            self._stats["dispatch_nacks"] += 1
            logger.warning(f"Agent {agent_id} rejected dispatch {sequence}, rolling back")
            self._rollback(agent, resync=outstanding > 1)
            return True

    def battery_check(self, agent_id: str) -> bool:
        """
        Check whether an agent's battery covers its whole queue.

        When it does not, the queue is released to pending, a recharge task
        becomes the agent's only task, and an allocation pass runs.

        Returns:
            True if the current queue can be kept as is

        Raises:
            UnknownAgent: if the agent has no record
        """
        with self._lock:
            agent = self._require_agent(agent_id)

            head = agent.get_first_task()
            if head is not None and head.kind == TaskKind.RECHARGE:
                return True

            if agent.is_battery_for_queue(self.catalog):
                return True

            try:
                self.catalog.validate(self.recharge_task.params)
            except InvalidTaskParams as e:
                logger.warning(f"Agent {agent_id} battery {agent.battery_fraction:.2f} "
                               f"cannot cover its queue, but no recharge is possible: {e.detail}")
                return False

            logger.warning(f"Agent {agent_id} battery {agent.battery_fraction:.2f} "
                           f"cannot cover its queue, ordering a recharge")

            agent.set_old_task_queue()
            for task in agent.empty_the_queue():
                self._release(task)

            sequence = self._take_sequence()
            recharge = self.recharge_task.instantiate(f"recharge-{sequence}", sequence)
            self._register(recharge)
            self._recharge_instances.add(recharge.task_id)
            agent.push_front(recharge)
            self._stats["recharges_ordered"] += 1

            self._dispatch(agent)
            self._allocation_pass()
            return False

    # ========== Liveness ==========

    def check_beacons_timeout(self, now: Optional[float] = None) -> List[LivenessEvent]:
        """
        Periodic sweep.

        Lost agents release their whole queue to pending (the head restarts
        from scratch). An allocation pass runs if anything was released or
        tasks are still waiting from earlier stalls.
        """
        with self._lock:
            now = self._clock() if now is None else now
            events = self.liveness.check_beacons_timeout(self.agents.values(), now)

            for event in events:
                if event.event_type == LivenessEventType.LOST:
                    self._release_agent(self.agents[event.agent_id])

            if self.pending_tasks:
                self._allocation_pass()

        for event in events:
            self._emit_event(event)
        return events

    def remove_agent(self, agent_id: str) -> List[str]:
        """
        Drop an agent from the fleet.

        Returns:
            Ids of the tasks it released to pending
        """
        with self._lock:
            agent = self._require_agent(agent_id)
            released = [t.task_id for t in agent.queue]
            self._release_agent(agent)
            del self.agents[agent_id]
            logger.info(f"Removed agent {agent_id}")

            self._allocation_pass()
            return released

    # ========== Mission state ==========

    def mission_over(self, value: bool = True) -> None:
        """Stop (or resume) allocation passes and ingestion."""
        with self._lock:
            self._mission_over = bool(value)
            logger.info(f"Mission {self.catalog.mission_id} over: {self._mission_over}")
            if not self._mission_over and self.pending_tasks:
                self._allocation_pass()

    def drain_dispatches(self) -> List[DispatchMessage]:
        """Take the dispatches produced since the last call."""
        with self._lock:
            outbox = self._outbox
            self._outbox = []
            return outbox

    def planner_beacon(self) -> PlannerBeacon:
        with self._lock:
            return PlannerBeacon(
                mission_id=self.catalog.mission_id,
                timestamp=time.time(),
                mission_over=self._mission_over,
                pending_tasks=len(self.pending_tasks),
                alive_agents=sum(1 for a in self.agents.values() if a.is_alive),
            )

    # ========== Queries ==========

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise UnknownTask(task_id)
            return task

    def get_agent(self, agent_id: str) -> AgentRecord:
        with self._lock:
            return self._require_agent(agent_id)

    def owner_of(self, task_id: str) -> Optional[str]:
        """Agent holding the task in its queue, or None while pending."""
        with self._lock:
            if task_id in self.pending_tasks:
                return None
            for agent in self.agents.values():
                if agent.is_task_in_queue(task_id):
                    return agent.agent_id
            raise UnknownTask(task_id)

    def task_ids_of_kind(self, kind: TaskKind) -> Set[str]:
        with self._lock:
            return set(self._kind_index[kind])

    def verify_ownership(self) -> List[str]:
        """
        Check that every live task has exactly one holder.

        Returns:
            Human-readable violations (empty when consistent)
        """
        with self._lock:
            holders: Dict[str, List[str]] = {task_id: [] for task_id in self._tasks}
            problems: List[str] = []

            for task_id in self.pending_tasks:
                holders.setdefault(task_id, []).append("pending")
            for agent in self.agents.values():
                for task in agent.queue:
                    holders.setdefault(task.task_id, []).append(agent.agent_id)

            for task_id, where in holders.items():
                if task_id not in self._tasks:
                    problems.append(f"{task_id} is held by {where} but not registered")
                elif len(where) != 1:
                    problems.append(f"{task_id} is held by {where or 'nobody'}")
            return problems

    def get_statistics(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        with self._lock:
            liveness_counts = {state.value: 0 for state in Liveness}
            for agent in self.agents.values():
                liveness_counts[agent.liveness.value] += 1

            queue_sizes = [a.get_queue_size() for a in self.agents.values()]

            return {
                "mission_id": self.catalog.mission_id,
                "mission_over": self._mission_over,
                "num_agents": len(self.agents),
                "agents_by_liveness": liveness_counts,
                "live_tasks": len(self._tasks),
                "pending_tasks": len(self.pending_tasks),
                "tasks_by_kind": {k.value: len(ids) for k, ids in self._kind_index.items()},
                "mean_queue_size": float(np.mean(queue_sizes)) if queue_sizes else 0.0,
                "mean_completion_time": (float(np.mean(self._completion_times))
                                         if self._completion_times else 0.0),
                **self._stats,
                "allocator": self.allocator.get_statistics(),
                "liveness": self.liveness.get_statistics(),
            }

    # ========== Internals (lock held) ==========

    def _take_sequence(self) -> int:
        self._next_sequence += 1
        return self._next_sequence

    def _require_agent(self, agent_id: str) -> AgentRecord:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise UnknownAgent(agent_id)
        return agent

    def _register(self, task: Task) -> None:
        task.created_time = self._clock()
        self._tasks[task.task_id] = task
        self._kind_index[task.kind].add(task.task_id)

    def _retire(self, task: Task) -> None:
        """Forget a task that is terminal or cancelled."""
        self._tasks.pop(task.task_id, None)
        self._kind_index[task.kind].discard(task.task_id)
        self._recharge_instances.discard(task.task_id)
        self.pending_tasks.pop(task.task_id, None)

    def _release(self, task: Task) -> None:
        """
        Return a task taken out of a queue to the pending set.

        Recharge instances were ordered for one agent's battery and are
        dropped instead.
        """
        if task.task_id in self._recharge_instances:
            self._retire(task)
            return
        task.mark_pending()
        self.pending_tasks[task.task_id] = task
        self._stats["tasks_released"] += 1

    def _release_agent(self, agent: AgentRecord) -> None:
        agent.delete_old_task_queue()
        released = agent.empty_the_queue()
        for task in released:
            self._release(task)
        agent.acked_sequence = agent.dispatch_sequence
        self._outbox = [m for m in self._outbox if m.agent_id != agent.agent_id]

        if released:
            logger.warning(f"Agent {agent.agent_id} released {len(released)} task(s): "
                           f"{[t.task_id for t in released]}")

    def _rollback(self, agent: AgentRecord, resync: bool = False) -> None:
        """
        Restore the agent's last committed queue.

        Tasks added since the snapshot go back to pending. Snapshot tasks
        that left the queue in the meantime are taken back from pending;
        those already finished, cancelled or owned by another agent stay
        where they are. The restored queue is sent again when it differs
        from the snapshot, or when ``resync`` is set.
        """
        if not agent.in_transaction:
            if resync:
                self._dispatch(agent)
            return

        current_ids = {t.task_id for t in agent.queue}
        snapshot_ids = [t.task_id for t in agent.shadow_queue]

        for task in agent.restore_old_task_queue():
            self._release(task)

        restored: List[Task] = []
        for task in agent.queue:
            if task.task_id in current_ids:
                restored.append(task)
            elif self.pending_tasks.get(task.task_id) is task:
                del self.pending_tasks[task.task_id]
                task.mark_queued(agent.agent_id)
                restored.append(task)
            else:
                logger.debug(f"Task {task.task_id} moved on, not restored to {agent.agent_id}")
        agent.queue = restored

        if resync or [t.task_id for t in restored] != snapshot_ids:
            self._dispatch(agent)

    def _dispatch(self, agent: AgentRecord) -> None:
        """Queue the agent's full queue for sending, replacing an unsent one."""
        message = DispatchMessage(
            agent_id=agent.agent_id,
            sequence=agent.next_dispatch_sequence(),
            tasks=[TaskPayload.from_dict(t.to_payload()) for t in agent.queue],
        )
        self._outbox = [m for m in self._outbox if m.agent_id != agent.agent_id]
        self._outbox.append(message)
        self._stats["dispatches"] += 1
        logger.debug(f"Dispatch {message.sequence} to {agent.agent_id}: {message.task_ids}")

    def _allocation_pass(self) -> Optional[AllocationResult]:
        if self._mission_over:
            logger.debug("Mission over, skipping allocation pass")
            return None
        if not self.pending_tasks:
            return None

        result = self.allocator.allocate(self.pending_tasks, self.agents)
        for agent_id in result.touched_agents:
            self._dispatch(self.agents[agent_id])

        self.last_allocation = result
        return result

    def _emit_event(self, event: LivenessEvent) -> None:
        for handler in self._event_handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler error: {e}")
