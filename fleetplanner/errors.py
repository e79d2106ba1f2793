"""Error types raised by the mission planner."""


class PlannerError(Exception):
    """Base error for all planner failures."""


class InvalidTaskParams(PlannerError):
    """A task spec references an unknown resource or is malformed."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid task params: {detail}")


class UnknownTask(PlannerError):
    """The referenced task is not pending (or does not exist at all)."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Unknown task: {task_id}")


class UnknownAgent(PlannerError):
    """The referenced agent has never sent a beacon."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Unknown agent: {agent_id}")


class TaskNotAtHead(PlannerError):
    """A task result does not match the head of the agent's queue."""

    def __init__(self, agent_id: str, task_id: str, head_id: str = None) -> None:
        self.agent_id = agent_id
        self.task_id = task_id
        self.head_id = head_id
        super().__init__(
            f"Task {task_id} is not at the head of {agent_id}'s queue "
            f"(head: {head_id or 'empty'})"
        )


class MissionOver(PlannerError):
    """The mission has ended; no new work is accepted."""

    def __init__(self) -> None:
        super().__init__("Mission is over")


class InvalidBeacon(PlannerError):
    """A beacon from an unknown agent carries an unusable capability."""

    def __init__(self, agent_id: str, detail: str) -> None:
        self.agent_id = agent_id
        self.detail = detail
        super().__init__(f"Invalid beacon from {agent_id}: {detail}")
