"""Tests for the asyncio mission runtime."""

import asyncio

import pytest

from fleetplanner.core.geometry import Vector3
from fleetplanner.core.message import (
    AgentBeacon,
    CancelTaskRequest,
    MissionOverMessage,
    NewTaskRequest,
    TaskOutcome,
    TaskResultMessage,
    UpdateTaskRequest,
)
from fleetplanner.errors import InvalidTaskParams, MissionOver
from fleetplanner.mission.coordinator import MissionCoordinator
from fleetplanner.mission.runtime import MissionRuntime
from fleetplanner.mission.transport import AckPolicy, InMemoryTransport
from fleetplanner.planning.task import TaskStatus

from tests.helpers import DELIVER_KIT_TO_ALICE, INSPECT_SQUARE, FakeClock, make_config


def courier_beacon(agent_id="courier", position=(0, 0, 0)):
    return AgentBeacon(agent_id, "deliver", Vector3.from_list(position), 1.0)


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def runtime(coordinator, transport):
    return MissionRuntime(coordinator, transport)


class TestMessageHandling:
    """Tests for message processing and dispatch flushing."""

    @pytest.mark.asyncio
    async def test_new_task_dispatched_and_acked(self, runtime, coordinator, transport):
        runtime.submit(courier_beacon())
        reply = runtime.submit(NewTaskRequest(DELIVER_KIT_TO_ALICE))

        await runtime.drain()

        task_id = reply.result()
        assert [d.task_ids for d in transport.sent_dispatches] == [[task_id]]
        assert coordinator.get_task(task_id).status == TaskStatus.IN_PROGRESS
        assert not coordinator.get_agent("courier").in_transaction

    @pytest.mark.asyncio
    async def test_rejected_dispatch_rolls_back(self, runtime, coordinator, transport):
        transport.set_policy("courier", AckPolicy.REJECT)
        runtime.submit(courier_beacon())
        reply = runtime.submit(NewTaskRequest(DELIVER_KIT_TO_ALICE))

        await runtime.drain()

        task_id = reply.result()
        assert task_id in coordinator.pending_tasks
        assert coordinator.get_agent("courier").is_queue_empty()
        assert len(transport.sent_dispatches) == 1

    @pytest.mark.asyncio
    async def test_link_failure_is_a_nack(self, runtime, coordinator, transport):
        transport.set_policy("courier", AckPolicy.RAISE)
        runtime.submit(courier_beacon())
        reply = runtime.submit(NewTaskRequest(DELIVER_KIT_TO_ALICE))

        await runtime.drain()

        assert reply.result() in coordinator.pending_tasks
        assert coordinator.get_statistics()["dispatch_nacks"] == 1
        assert runtime.get_statistics()["errors"] == 0

    @pytest.mark.asyncio
    async def test_invalid_task_returned_to_requester(self, runtime):
        reply = runtime.submit(NewTaskRequest({"kind": "deliver", "tool_id": "nonexistent",
                                               "human_target_id": "alice"}))
        await runtime.drain()

        with pytest.raises(InvalidTaskParams):
            await reply

    @pytest.mark.asyncio
    async def test_stale_result_ignored(self, runtime):
        """A result from an agent the planner never heard of is logged and dropped."""
        reply = runtime.submit(TaskResultMessage("ghost", "t1", TaskOutcome.SUCCEEDED))
        await runtime.drain()

        assert reply.result() is None
        assert runtime.get_statistics()["stale_reports"] == 1

    @pytest.mark.asyncio
    async def test_task_result(self, runtime, coordinator):
        runtime.submit(courier_beacon())
        task_id = await self._submit_and_drain(runtime, NewTaskRequest(DELIVER_KIT_TO_ALICE))

        result = await self._submit_and_drain(
            runtime, TaskResultMessage("courier", task_id, TaskOutcome.SUCCEEDED)
        )

        assert result == task_id
        assert coordinator.get_agent("courier").is_queue_empty()

    @pytest.mark.asyncio
    async def test_update_and_cancel(self, runtime, coordinator):
        task_id = await self._submit_and_drain(runtime, NewTaskRequest(INSPECT_SQUARE))

        await self._submit_and_drain(runtime, UpdateTaskRequest(task_id, {"waypoints": ["wp_a"]}))
        assert coordinator.get_task(task_id).params.waypoints == ["wp_a"]

        await self._submit_and_drain(runtime, CancelTaskRequest(task_id))
        assert coordinator.pending_tasks == {}

    @pytest.mark.asyncio
    async def test_mission_over(self, runtime):
        runtime.submit(MissionOverMessage(True))
        reply = runtime.submit(NewTaskRequest(DELIVER_KIT_TO_ALICE))
        await runtime.drain()

        with pytest.raises(MissionOver):
            reply.result()

    @pytest.mark.asyncio
    async def test_unsupported_message(self, runtime):
        reply = runtime.submit("hello")
        await runtime.drain()

        with pytest.raises(TypeError):
            reply.result()
        assert runtime.get_statistics()["errors"] == 1

    @pytest.mark.asyncio
    async def test_fire_and_forget_errors_are_logged(self, runtime, coordinator, monkeypatch):
        """Beacons and mission-over carry no reply, so a handler error is only counted."""
        def broken(*args, **kwargs):
            raise RuntimeError("record store unavailable")
        monkeypatch.setattr(coordinator, "beacon", broken)

        assert runtime.submit(courier_beacon()) is None
        assert runtime.submit(MissionOverMessage(True)) is None
        await runtime.drain()

        stats = runtime.get_statistics()
        assert stats["processed"] == 2
        assert stats["errors"] == 1
        assert coordinator.is_mission_over

    @staticmethod
    async def _submit_and_drain(runtime, message):
        reply = runtime.submit(message)
        await runtime.drain()
        return reply.result()


class TestSweep:
    """Tests for the liveness sweep through the runtime."""

    @pytest.mark.asyncio
    async def test_lost_agent_work_is_redispatched(self, clock, transport):
        coordinator = MissionCoordinator(make_config(), clock=clock)
        runtime = MissionRuntime(coordinator, transport)
        runtime.submit(courier_beacon("a", (5, 0, 0)))
        runtime.submit(courier_beacon("b", (0, -100, 0)))
        reply = runtime.submit(NewTaskRequest(DELIVER_KIT_TO_ALICE))
        await runtime.drain()
        task_id = reply.result()
        assert coordinator.owner_of(task_id) == "a"

        clock.advance(6.0)
        runtime.submit(courier_beacon("b", (0, -100, 0)))
        await runtime.drain()
        runtime.sweep()
        await runtime.drain()

        assert coordinator.owner_of(task_id) == "b"
        assert transport.last_dispatch("b").task_ids == [task_id]
        assert coordinator.get_task(task_id).status == TaskStatus.IN_PROGRESS


class TestRunLoop:
    """Tests for the long-running loops."""

    @pytest.mark.asyncio
    async def test_run_and_stop(self, transport):
        config = make_config(sweep_interval=0.02, planner_beacon_rate=50.0)
        coordinator = MissionCoordinator(config, clock=FakeClock())
        runtime = MissionRuntime(coordinator, transport)

        runner = asyncio.create_task(runtime.run_async())
        runtime.submit(courier_beacon())
        task_id = await asyncio.wait_for(runtime.request(NewTaskRequest(DELIVER_KIT_TO_ALICE)), 1.0)
        await asyncio.sleep(0.1)

        runtime.stop()
        await asyncio.wait_for(runner, 2.0)

        assert coordinator.get_task(task_id).status == TaskStatus.IN_PROGRESS
        assert transport.planner_beacons
        assert transport.planner_beacons[-1].mission_id == "test_mission"
        stats = runtime.get_statistics()
        assert stats["sweeps"] >= 1
        assert not stats["running"]
