"""Tests for task params parsing and the task lifecycle."""

import pytest

from fleetplanner.errors import InvalidTaskParams
from fleetplanner.planning.task import (
    DeliverParams,
    InspectParams,
    MonitorParams,
    RechargeParams,
    Task,
    TaskKind,
    TaskStatus,
    parse_task_spec,
    recharge_template,
)


class TestParseTaskSpec:
    """Tests for the tagged params union."""

    def test_flat_spec(self):
        """A flat mapping selects the params type from its kind."""
        params = parse_task_spec({"kind": "deliver", "tool_id": "kit", "human_target_id": "alice"})

        assert isinstance(params, DeliverParams)
        assert params.tool_id == "kit"

    def test_nested_params(self):
        """Params may be nested under a 'params' key."""
        params = parse_task_spec({"kind": "inspect", "params": {"waypoints": ["wp_a"]}})

        assert isinstance(params, InspectParams)
        assert params.waypoints == ["wp_a"]

    def test_monitor_defaults(self):
        params = parse_task_spec({"kind": "monitor", "human_target_id": "bob"})

        assert isinstance(params, MonitorParams)
        assert params.waypoints == []
        assert params.laps == 1

    def test_recharge_without_station(self):
        params = parse_task_spec({"kind": "recharge"})

        assert isinstance(params, RechargeParams)
        assert params.charging_station is None

    def test_unknown_kind_rejected(self):
        with pytest.raises(InvalidTaskParams):
            parse_task_spec({"kind": "dance"})

    def test_missing_field_rejected(self):
        """A deliver task without a human target is rejected with the field name."""
        with pytest.raises(InvalidTaskParams) as exc:
            parse_task_spec({"kind": "deliver", "tool_id": "kit"})

        assert "human_target_id" in str(exc.value)

    def test_empty_inspection_rejected(self):
        with pytest.raises(InvalidTaskParams):
            parse_task_spec({"kind": "inspect", "waypoints": []})

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidTaskParams):
            parse_task_spec(["deliver"])

    def test_params_instance_is_copied(self):
        original = InspectParams(waypoints=["wp_a"])
        params = parse_task_spec(original)

        params.waypoints.append("wp_b")
        assert original.waypoints == ["wp_a"]


class TestTask:
    """Tests for the task record."""

    @pytest.fixture
    def task(self):
        return Task(
            task_id="t1",
            params=DeliverParams(tool_id="kit", human_target_id="alice"),
            sequence=3,
        )

    def test_initial_state(self, task):
        assert task.kind == TaskKind.DELIVER
        assert task.status == TaskStatus.PENDING
        assert task.assigned_agent is None
        assert not task.is_terminal

    def test_lifecycle(self, task):
        """Queued -> in progress -> back to pending clears the owner."""
        task.mark_queued("courier")
        assert task.assigned_agent == "courier"
        assert task.status == TaskStatus.QUEUED

        task.mark_in_progress()
        assert task.status == TaskStatus.IN_PROGRESS

        task.mark_pending()
        assert task.assigned_agent is None
        assert task.status == TaskStatus.PENDING

    def test_terminal_states(self, task):
        task.mark_succeeded()
        assert task.is_terminal

        task.mark_failed()
        assert task.status == TaskStatus.FAILED
        assert task.is_terminal

    def test_payload(self, task):
        """The dispatch payload carries kind and params without the tag."""
        payload = task.to_payload()

        assert payload == {
            "task_id": "t1",
            "kind": "deliver",
            "params": {"tool_id": "kit", "human_target_id": "alice"},
        }

    def test_to_dict(self, task):
        data = task.to_dict()

        assert data["status"] == "pending"
        assert data["attempts"] == 0


class TestRechargeTemplate:
    """Tests for the recharge template."""

    def test_instantiate_copies_params(self):
        template = recharge_template("dock")
        instance = template.instantiate("recharge-1", sequence=7)

        assert instance.task_id == "recharge-1"
        assert instance.kind == TaskKind.RECHARGE
        assert instance.params.charging_station == "dock"
        assert instance.params is not template.params
        assert instance.sequence == 7
