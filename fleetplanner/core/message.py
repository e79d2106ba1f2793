"""
Messages exchanged between the planner and its collaborators.

This module defines:
- Agent beacons and planner beacons
- Dispatches (an agent's full ordered queue) and their acknowledgements
- Task results, new task requests and the other planner-bound requests

Every message is a plain dataclass with ``to_dict()``/``from_dict()``;
the wire format itself belongs to the transport.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from fleetplanner.core.geometry import Vector3


class MessageType(IntEnum):
    """Message type identifiers."""
    AGENT_BEACON = 0x01
    PLANNER_BEACON = 0x02
    DISPATCH = 0x10
    DISPATCH_ACK = 0x11
    TASK_RESULT = 0x20
    NEW_TASK = 0x30
    UPDATE_TASK = 0x31
    CANCEL_TASK = 0x32
    BATTERY_CHECK = 0x40
    MISSION_OVER = 0x50


class TaskOutcome(Enum):
    """Outcome reported by an agent for its head task."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class AgentBeacon:
    """Periodic liveness/status report from an agent."""

    agent_id: str
    capability: str
    position: Vector3 = field(default_factory=Vector3)
    battery_fraction: float = 1.0
    timestamp: float = field(default_factory=time.time)

    message_type = MessageType.AGENT_BEACON

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "capability": self.capability,
            "position": self.position.to_list(),
            "battery_fraction": self.battery_fraction,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AgentBeacon:
        return cls(
            agent_id=data["agent_id"],
            capability=data["capability"],
            position=Vector3.from_list(data.get("position", [0.0, 0.0, 0.0])),
            battery_fraction=float(data.get("battery_fraction", 1.0)),
            timestamp=float(data.get("timestamp", time.time())),
        )


@dataclass
class PlannerBeacon:
    """Periodic planner heartbeat published to the fleet."""

    mission_id: str
    timestamp: float = field(default_factory=time.time)
    mission_over: bool = False
    pending_tasks: int = 0
    alive_agents: int = 0

    message_type = MessageType.PLANNER_BEACON

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mission_id": self.mission_id,
            "timestamp": self.timestamp,
            "mission_over": self.mission_over,
            "pending_tasks": self.pending_tasks,
            "alive_agents": self.alive_agents,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PlannerBeacon:
        return cls(
            mission_id=data["mission_id"],
            timestamp=float(data.get("timestamp", time.time())),
            mission_over=bool(data.get("mission_over", False)),
            pending_tasks=int(data.get("pending_tasks", 0)),
            alive_agents=int(data.get("alive_agents", 0)),
        )


@dataclass
class TaskPayload:
    """One task as an agent sees it."""

    task_id: str
    kind: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"task_id": self.task_id, "kind": self.kind, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaskPayload:
        return cls(
            task_id=data["task_id"],
            kind=data["kind"],
            params=dict(data.get("params", {})),
        )


@dataclass
class DispatchMessage:
    """
    The agent's full queue, head first.

    Agents replace their local queue with ``tasks`` and answer with a
    DispatchAck carrying the same ``sequence``.
    """

    agent_id: str
    sequence: int
    tasks: List[TaskPayload] = field(default_factory=list)

    message_type = MessageType.DISPATCH

    @property
    def task_ids(self) -> List[str]:
        return [t.task_id for t in self.tasks]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "sequence": self.sequence,
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DispatchMessage:
        return cls(
            agent_id=data["agent_id"],
            sequence=int(data["sequence"]),
            tasks=[TaskPayload.from_dict(t) for t in data.get("tasks", [])],
        )


@dataclass
class DispatchAck:
    """Agent answer to a dispatch."""

    agent_id: str
    sequence: int
    accepted: bool

    message_type = MessageType.DISPATCH_ACK

    def to_dict(self) -> Dict[str, Any]:
        return {"agent_id": self.agent_id, "sequence": self.sequence, "accepted": self.accepted}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DispatchAck:
        return cls(
            agent_id=data["agent_id"],
            sequence=int(data["sequence"]),
            accepted=bool(data["accepted"]),
        )


@dataclass
class TaskResultMessage:
    """Outcome of the head task reported by an agent."""

    agent_id: str
    task_id: str
    outcome: TaskOutcome

    message_type = MessageType.TASK_RESULT

    def to_dict(self) -> Dict[str, Any]:
        return {"agent_id": self.agent_id, "task_id": self.task_id, "outcome": self.outcome.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaskResultMessage:
        return cls(
            agent_id=data["agent_id"],
            task_id=data["task_id"],
            outcome=TaskOutcome(data["outcome"]),
        )


@dataclass
class NewTaskRequest:
    """External request to add a task; answered with the new task id."""

    spec: Dict[str, Any]

    message_type = MessageType.NEW_TASK

    def to_dict(self) -> Dict[str, Any]:
        return {"spec": dict(self.spec)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> NewTaskRequest:
        return cls(spec=dict(data["spec"]))


@dataclass
class UpdateTaskRequest:
    """Replace the params of a task that is still pending."""

    task_id: str
    spec: Dict[str, Any]

    message_type = MessageType.UPDATE_TASK

    def to_dict(self) -> Dict[str, Any]:
        return {"task_id": self.task_id, "spec": dict(self.spec)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UpdateTaskRequest:
        return cls(task_id=data["task_id"], spec=dict(data["spec"]))


@dataclass
class CancelTaskRequest:
    task_id: str

    message_type = MessageType.CANCEL_TASK

    def to_dict(self) -> Dict[str, Any]:
        return {"task_id": self.task_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CancelTaskRequest:
        return cls(task_id=data["task_id"])


@dataclass
class BatteryCheckRequest:
    """Ask the planner whether an agent's battery covers its queue."""

    agent_id: str

    message_type = MessageType.BATTERY_CHECK

    def to_dict(self) -> Dict[str, Any]:
        return {"agent_id": self.agent_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BatteryCheckRequest:
        return cls(agent_id=data["agent_id"])


@dataclass
class MissionOverMessage:
    value: bool = True

    message_type = MessageType.MISSION_OVER

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MissionOverMessage:
        return cls(value=bool(data.get("value", True)))


_MESSAGE_CLASSES = {
    MessageType.AGENT_BEACON: AgentBeacon,
    MessageType.PLANNER_BEACON: PlannerBeacon,
    MessageType.DISPATCH: DispatchMessage,
    MessageType.DISPATCH_ACK: DispatchAck,
    MessageType.TASK_RESULT: TaskResultMessage,
    MessageType.NEW_TASK: NewTaskRequest,
    MessageType.UPDATE_TASK: UpdateTaskRequest,
    MessageType.CANCEL_TASK: CancelTaskRequest,
    MessageType.BATTERY_CHECK: BatteryCheckRequest,
    MessageType.MISSION_OVER: MissionOverMessage,
}


def encode_message(message: Any) -> Dict[str, Any]:
    """Wrap a message as ``{"type": name, "body": {...}}``."""
    return {"type": message.message_type.name, "body": message.to_dict()}


def decode_message(data: Dict[str, Any]) -> Any:
    """
    Inverse of ``encode_message``.

    Raises:
        ValueError: if the type is unknown
    """
    type_name: Optional[str] = data.get("type")
    try:
        message_type = MessageType[type_name]
    except KeyError:
        raise ValueError(f"Unknown message type: {type_name}") from None
    return _MESSAGE_CLASSES[message_type].from_dict(data.get("body", {}))
