"""
Planning module for FleetPlanner.

Task representation, cost evaluation and greedy allocation.
"""

from fleetplanner.planning.task import (
    Task,
    TaskKind,
    TaskStatus,
    parse_task_spec,
)
from fleetplanner.planning.cost import (
    Cost,
    CostEvaluator,
    CostOracle,
    StraightLineOracle,
)
from fleetplanner.planning.allocator import (
    Allocator,
    AllocationResult,
    Assignment,
)

__all__ = [
    # Task
    "Task",
    "TaskKind",
    "TaskStatus",
    "parse_task_spec",
    # Cost
    "Cost",
    "CostEvaluator",
    "CostOracle",
    "StraightLineOracle",
    # Allocation
    "Allocator",
    "AllocationResult",
    "Assignment",
]
