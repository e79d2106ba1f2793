#!/usr/bin/env python
"""
FleetPlanner - mission planner for robotic fleets

Main entry point for running the demonstration and checking mission files.
"""

import sys
import asyncio
import argparse
from loguru import logger


DEFAULT_CONFIG = "config/demo_mission.yaml"


class SimClock:
    """Manually advanced clock so the demo can skip ahead in time."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def print_queues(coordinator):
    for agent_id in sorted(coordinator.agents):
        agent = coordinator.agents[agent_id]
        queue = ", ".join(f"{t.task_id}({t.kind.value})" for t in agent.queue) or "-"
        print(f"  {agent_id:<10} [{agent.liveness.value:<14}] battery {agent.battery_fraction:.0%}  "
              f"queue: {queue}")
    pending = ", ".join(sorted(coordinator.pending_tasks)) or "-"
    print(f"  pending: {pending}")


async def _demo(config_path: str) -> None:
    from fleetplanner.core.config import MissionConfig
    from fleetplanner.core.geometry import Vector3
    from fleetplanner.core.message import AgentBeacon, NewTaskRequest, TaskResultMessage, TaskOutcome
    from fleetplanner.mission.coordinator import MissionCoordinator
    from fleetplanner.mission.runtime import MissionRuntime
    from fleetplanner.mission.transport import InMemoryTransport

    config = MissionConfig.from_yaml(config_path)
    clock = SimClock()
    coordinator = MissionCoordinator(config, clock=clock)
    transport = InMemoryTransport()
    runtime = MissionRuntime(coordinator, transport)

    fleet = {
        "courier_1": ("deliver", [0.0, 0.0, 0.0]),
        "courier_2": ("deliver", [22.0, 0.0, 0.0]),
        "scout_1": ("inspect", [5.0, 5.0, 0.0]),
        "watcher_1": ("monitor", [0.0, 10.0, 0.0]),
    }

    def beacon_all(skip=()):
        for agent_id, (capability, position) in fleet.items():
            if agent_id in skip:
                continue
            runtime.submit(AgentBeacon(agent_id, capability, Vector3.from_list(position), 0.9))

    print(f"Fleet of {len(fleet)} agents joins mission {config.mission_id}")
    beacon_all()
    await runtime.drain()

    specs = [
        {"kind": "deliver", "tool_id": "first_aid_kit", "human_target_id": "victim_1"},
        {"kind": "deliver", "tool_id": "radio", "human_target_id": "victim_1"},
        {"kind": "deliver", "tool_id": "water", "human_target_id": "victim_2"},
        {"kind": "inspect", "waypoints": ["pier_north", "pier_south"]},
        {"kind": "monitor", "human_target_id": "victim_2"},
        {"kind": "deliver", "tool_id": "blanket", "human_target_id": "victim_2"},
    ]

    print("\nSubmitting tasks...")
    replies = [runtime.submit(NewTaskRequest(spec)) for spec in specs]
    await runtime.drain()
    for spec, reply in zip(specs, replies):
        if reply.exception() is not None:
            print(f"  rejected {spec['kind']}: {reply.exception()}")
        else:
            print(f"  {reply.result()} <- {spec['kind']}")

    print("\nQueues after allocation:")
    print_queues(coordinator)

    print(f"\ncourier_2 goes silent for {config.settings.beacon_timeout + 1:.0f}s...")
    clock.advance(config.settings.beacon_timeout + 1.0)
    beacon_all(skip=("courier_2",))
    await runtime.drain()
    runtime.sweep()
    await runtime.drain()
    print_queues(coordinator)

    head = coordinator.agents["courier_1"].get_first_task()
    if head is not None:
        print(f"\ncourier_1 completes {head.task_id}")
        runtime.submit(TaskResultMessage("courier_1", head.task_id, TaskOutcome.SUCCEEDED))
        await runtime.drain()
        print_queues(coordinator)

    stats = coordinator.get_statistics()
    print("\nStatistics:")
    for key in ("tasks_received", "tasks_rejected", "tasks_succeeded", "tasks_released",
                "dispatches", "dispatch_nacks"):
        print(f"  {key}: {stats[key]}")
    print(f"  dispatches sent: {len(transport.sent_dispatches)}")


def run_demo(config_path: str):
    """Run a scripted mission against an in-memory fleet."""
    print("=" * 60)
    print("FleetPlanner Demonstration")
    print("=" * 60)
    print()

    asyncio.run(_demo(config_path))

    print("\n" + "=" * 60)
    print("Demonstration complete!")
    print("=" * 60)


def check_config(config_path: str) -> bool:
    """Validate a mission file and print what it defines."""
    from pydantic import ValidationError
    from fleetplanner.core.config import MissionConfig
    from fleetplanner.errors import PlannerError
    from fleetplanner.mission.catalog import MissionCatalog

    try:
        config = MissionConfig.from_yaml(config_path)
        catalog = MissionCatalog(config)
    except (OSError, ValidationError, PlannerError) as e:
        print(f"Invalid mission file {config_path}:\n{e}")
        return False

    print(f"Mission {config.mission_id}")
    for key, count in catalog.describe().items():
        print(f"  {key}: {count}")
    print("Settings:")
    for key, value in config.settings.model_dump().items():
        print(f"  {key}: {value}")
    return True


def main():
    parser = argparse.ArgumentParser(description="FleetPlanner mission planner")
    parser.add_argument("command", choices=["demo", "check-config"],
                       help="Command to run")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG,
                       help="Mission YAML file")
    parser.add_argument("-v", "--verbose", action="store_true",
                       help="Enable verbose logging")

    args = parser.parse_args()

    if not args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="WARNING")

    if args.command == "demo":
        run_demo(args.config)
    elif args.command == "check-config":
        success = check_config(args.config)
        sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
