"""Tests for the greedy allocator."""

import pytest

from fleetplanner.core.geometry import Vector3
from fleetplanner.fleet.agent_record import AgentRecord, Capability, Liveness
from fleetplanner.planning.allocator import Allocator
from fleetplanner.planning.cost import CostEvaluator
from fleetplanner.planning.task import Task, TaskKind, TaskStatus, parse_task_spec

from tests.helpers import DELIVER_KIT_TO_ALICE, INSPECT_SQUARE


def make_task(task_id, spec=DELIVER_KIT_TO_ALICE, sequence=0):
    return Task(task_id=task_id, params=parse_task_spec(spec), sequence=sequence)


def make_agent(agent_id, capability=Capability.DELIVER, position=(0, 0, 0), battery=1.0):
    return AgentRecord(agent_id=agent_id, capability=capability,
                       position=Vector3.from_list(position), battery_fraction=battery)


def fleet(*agents):
    return {a.agent_id: a for a in agents}


@pytest.fixture
def allocator(catalog):
    return Allocator(CostEvaluator(catalog))


class TestOrdering:
    def test_partition_by_kind_then_sequence(self):
        tasks = [
            make_task("r", {"kind": "recharge"}, sequence=1),
            make_task("i", INSPECT_SQUARE, sequence=2),
            make_task("d2", sequence=5),
            make_task("m", {"kind": "monitor", "human_target_id": "bob"}, sequence=3),
            make_task("d1", sequence=4),
        ]

        ordered = Allocator.order_tasks(tasks)

        assert [t.task_id for t in ordered] == ["d1", "d2", "i", "m", "r"]


class TestAllocate:
    """Tests for one allocation pass."""

    def test_assigns_cheapest_agent(self, allocator):
        pending = {"t1": make_task("t1")}
        agents = fleet(make_agent("far", position=(0, -50, 0)), make_agent("near", position=(5, 1, 0)))

        result = allocator.allocate(pending, agents)

        assert [(a.task_id, a.agent_id) for a in result.assignments] == [("t1", "near")]
        assert pending == {}
        assert agents["near"].is_task_in_queue("t1")
        assert agents["near"].in_transaction
        assert agents["far"].is_queue_empty()

    def test_assigned_task_is_queued(self, allocator):
        task = make_task("t1")
        allocator.allocate({"t1": task}, fleet(make_agent("a")))

        assert task.status == TaskStatus.QUEUED
        assert task.assigned_agent == "a"

    @pytest.mark.parametrize("order", [("b", "a"), ("a", "b")])
    def test_tie_broken_by_agent_id(self, allocator, order):
        """Equal costs always go to the smaller agent id, whatever the fleet order."""
        positions = {"a": (5, -5, 0), "b": (5, 5, 0)}
        agents = fleet(*[make_agent(agent_id, position=positions[agent_id]) for agent_id in order])

        result = allocator.allocate({"t1": make_task("t1")}, agents)

        assert result.assignments[0].agent_id == "a"

    def test_battery_gate(self, allocator, catalog):
        """A cheaper agent without battery for the task never gets it."""
        near = make_agent("near", position=(5, 0, 0), battery=0.21)
        far = make_agent("far", position=(0, -50, 0))
        task = make_task("t1")
        assert not near.is_battery_enough(task, catalog)

        result = allocator.allocate({"t1": task}, fleet(near, far))

        assert result.assignments[0].agent_id == "far"
        assert near.is_queue_empty()

    def test_capability_filter(self, allocator):
        scout = make_agent("scout", Capability.INSPECT)
        courier = make_agent("courier", Capability.DELIVER, position=(100, 0, 0))

        result = allocator.allocate(
            {"t1": make_task("t1"), "t2": make_task("t2", INSPECT_SQUARE)},
            fleet(scout, courier),
        )

        owners = {a.task_id: a.agent_id for a in result.assignments}
        assert owners == {"t1": "courier", "t2": "scout"}

    def test_queue_penalty_spreads_load(self, allocator):
        """With equal travel, the second task goes to the idle agent."""
        agents = fleet(make_agent("a"), make_agent("b"))
        pending = {"t1": make_task("t1", sequence=1), "t2": make_task("t2", sequence=2)}

        result = allocator.allocate(pending, agents)

        owners = {a.task_id: a.agent_id for a in result.assignments}
        assert owners == {"t1": "a", "t2": "b"}

    def test_lost_agents_are_not_candidates(self, allocator):
        agent = make_agent("a")
        agent.liveness = Liveness.LOST
        pending = {"t1": make_task("t1")}

        result = allocator.allocate(pending, fleet(agent))

        assert result.assignments == []
        assert "t1" in result.stalled
        assert "t1" in pending

    def test_stall_reasons(self, allocator):
        low = make_agent("low", battery=0.05)
        pending = {"t1": make_task("t1"), "t2": make_task("t2", INSPECT_SQUARE)}

        result = allocator.allocate(pending, fleet(low))

        assert "battery" in result.stalled["t1"]
        assert "capability" in result.stalled["t2"]
        assert set(pending) == {"t1", "t2"}

    def test_recharge_goes_to_any_agent(self, allocator):
        scout = make_agent("scout", Capability.INSPECT, position=(1, 0, 0))

        result = allocator.allocate({"r": make_task("r", {"kind": "recharge"})}, fleet(scout))

        assert result.assignments[0].agent_id == "scout"

    def test_empty_pass(self, allocator):
        result = allocator.allocate({}, fleet(make_agent("a")))

        assert result.num_assigned == 0
        assert result.stalled == {}

    def test_result_and_statistics(self, allocator):
        agents = fleet(make_agent("a"), make_agent("b"))
        result = allocator.allocate({"t1": make_task("t1"), "t2": make_task("t2")}, agents)
        allocator.allocate({"t3": make_task("t3", INSPECT_SQUARE)}, agents)

        data = result.to_dict()
        assert data["pass_number"] == 1
        assert len(data["assignments"]) == 2
        assert result.touched_agents == ["a", "b"]

        stats = allocator.get_statistics()
        assert stats["passes"] == 2
        assert stats["total_assigned"] == 2
        assert stats["total_stalls"] == 1

    def test_deterministic_across_runs(self, catalog):
        """Identical input state produces identical assignments."""
        def run():
            allocator = Allocator(CostEvaluator(catalog))
            agents = fleet(make_agent("a", position=(1, 0, 0)), make_agent("b", position=(0, 1, 0)),
                           make_agent("c", position=(-1, 0, 0)))
            pending = {f"t{i}": make_task(f"t{i}", sequence=i) for i in range(6)}
            return [(a.task_id, a.agent_id) for a in allocator.allocate(pending, agents).assignments]

        assert run() == run()
