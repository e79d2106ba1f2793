"""Tests for planner messages."""

import pytest

from fleetplanner.core.geometry import Vector3
from fleetplanner.core.message import (
    AgentBeacon,
    DispatchMessage,
    MessageType,
    MissionOverMessage,
    TaskOutcome,
    TaskPayload,
    TaskResultMessage,
    decode_message,
    encode_message,
)


class TestMessages:
    """Tests for message conversion."""

    def test_beacon_round_trip(self):
        beacon = AgentBeacon("a", "deliver", Vector3(1, 2, 3), 0.5, timestamp=100.0)

        assert AgentBeacon.from_dict(beacon.to_dict()) == beacon

    def test_dispatch_carries_full_queue(self):
        data = {
            "agent_id": "a",
            "sequence": 4,
            "tasks": [
                {"task_id": "t1", "kind": "deliver",
                 "params": {"tool_id": "kit", "human_target_id": "alice"}},
                {"task_id": "t2", "kind": "recharge", "params": {"charging_station": None}},
            ],
        }

        message = DispatchMessage.from_dict(data)

        assert message.task_ids == ["t1", "t2"]
        assert isinstance(message.tasks[0], TaskPayload)
        assert message.to_dict() == data

    def test_encode_decode(self):
        result = TaskResultMessage("a", "t1", TaskOutcome.FAILED)

        encoded = encode_message(result)

        assert encoded["type"] == "TASK_RESULT"
        assert encoded["body"]["outcome"] == "failed"
        assert decode_message(encoded) == result

    def test_message_types(self):
        assert MissionOverMessage().message_type == MessageType.MISSION_OVER
        assert MissionOverMessage.from_dict({}).value is True

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            decode_message({"type": "TELEPORT", "body": {}})
