"""
Task representation for fleet missions.

A task is one unit of work (deliver, inspect, monitor, recharge). Its
kind-specific parameters form a tagged union validated by pydantic, so a
task can never carry parameters of the wrong shape for its kind.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from fleetplanner.errors import InvalidTaskParams


class TaskKind(Enum):
    """Kinds of work an agent can be asked to do."""
    DELIVER = "deliver"      # Carry a tool to a human target
    INSPECT = "inspect"      # Visit a list of waypoints
    MONITOR = "monitor"      # Orbit a human target
    RECHARGE = "recharge"    # Go to a charging station


class TaskStatus(Enum):
    """Status of a task in its lifecycle."""
    PENDING = "pending"          # Waiting for an allocation pass
    QUEUED = "queued"            # In an agent's queue, not started
    IN_PROGRESS = "in_progress"  # Head of an acknowledged queue
    SUCCEEDED = "succeeded"
    FAILED = "failed"            # Gave up after too many attempts


class DeliverParams(BaseModel):
    kind: Literal["deliver"] = "deliver"
    tool_id: str
    human_target_id: str


class InspectParams(BaseModel):
    kind: Literal["inspect"] = "inspect"
    waypoints: List[str] = Field(min_length=1)


class MonitorParams(BaseModel):
    kind: Literal["monitor"] = "monitor"
    human_target_id: str
    waypoints: List[str] = Field(default_factory=list)  # orbit; empty = hold over the target
    laps: int = Field(default=1, ge=1)


class RechargeParams(BaseModel):
    kind: Literal["recharge"] = "recharge"
    charging_station: Optional[str] = None  # None = nearest station


TaskParams = Annotated[
    Union[DeliverParams, InspectParams, MonitorParams, RechargeParams],
    Field(discriminator="kind"),
]

_params_adapter = TypeAdapter(TaskParams)


def parse_task_spec(spec: Union[Dict[str, Any], BaseModel]) -> TaskParams:
    """
    Validate a raw task spec into typed params.

    Accepts either a flat mapping (``{"kind": "deliver", "tool_id": ...}``)
    or ``{"kind": ..., "params": {...}}``.

    Raises:
        InvalidTaskParams: if the kind is unknown or fields are missing
    """
    if isinstance(spec, (DeliverParams, InspectParams, MonitorParams, RechargeParams)):
        return spec.model_copy(deep=True)

    if not isinstance(spec, dict):
        raise InvalidTaskParams(f"task spec must be a mapping, got {type(spec).__name__}")

    data = dict(spec)
    if isinstance(data.get("params"), dict):
        nested = data.pop("params")
        data = {**nested, **data}

    try:
        return _params_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidTaskParams(_summarize(e)) from e


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item["loc"]) or "spec"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)


def new_task_id() -> str:
    return str(uuid.uuid4())[:8]


@dataclass
class Task:
    """
    A unit of work tracked by the planner.

    Identity and params are set at ingestion; assignment and status change
    as the task moves between the pending set and agent queues.
    """

    task_id: str
    params: TaskParams

    # Assignment
    assigned_agent: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING

    # Bookkeeping
    attempts: int = 0
    sequence: int = 0           # ingestion order, used for deterministic passes
    created_time: float = field(default_factory=time.time)

    @property
    def kind(self) -> TaskKind:
        return TaskKind(self.params.kind)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)

    def mark_queued(self, agent_id: str) -> None:
        self.assigned_agent = agent_id
        self.status = TaskStatus.QUEUED

    def mark_in_progress(self) -> None:
        self.status = TaskStatus.IN_PROGRESS

    def mark_pending(self) -> None:
        """Return to the pending set; partial progress is discarded."""
        self.assigned_agent = None
        self.status = TaskStatus.PENDING

    def mark_succeeded(self) -> None:
        self.status = TaskStatus.SUCCEEDED

    def mark_failed(self) -> None:
        self.assigned_agent = None
        self.status = TaskStatus.FAILED

    def instantiate(self, task_id: str, sequence: int) -> Task:
        """Create a fresh pending task with a copy of these params."""
        return Task(
            task_id=task_id,
            params=self.params.model_copy(deep=True),
            sequence=sequence,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Payload sent to agents inside a dispatch."""
        params = self.params.model_dump()
        params.pop("kind")
        return {
            "task_id": self.task_id,
            "kind": self.kind.value,
            "params": params,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            **self.to_payload(),
            "status": self.status.value,
            "assigned_agent": self.assigned_agent,
            "attempts": self.attempts,
            "created_time": self.created_time,
        }

    def __repr__(self) -> str:
        return f"Task({self.task_id}, {self.kind.value}, {self.status.value})"


def recharge_template(charging_station: Optional[str] = None) -> Task:
    """The recharge task template instantiated whenever an agent must recharge."""
    return Task(
        task_id="recharge",
        params=RechargeParams(charging_station=charging_station),
    )
