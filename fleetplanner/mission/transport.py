"""
Transport boundary between the planner and the fleet.

Defines the abstract channel the runtime sends dispatches and planner
beacons over, and an in-memory implementation used by the demo and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List

from loguru import logger

from fleetplanner.core.message import DispatchMessage, PlannerBeacon


class AgentTransport(ABC):
    """
    Abstract channel to the agents.

    Implementations own the wire format and connection handling.
    """

    @abstractmethod
    async def send_dispatch(self, message: DispatchMessage) -> bool:
        """
        Send an agent its full queue.

        Returns:
            True if the agent acknowledged the dispatch, False on a nack.
            Raising is treated as a nack by the runtime.
        """
        pass

    @abstractmethod
    async def publish_planner_beacon(self, beacon: PlannerBeacon) -> None:
        """Broadcast the planner heartbeat."""
        pass


class AckPolicy(Enum):
    """How the in-memory fleet answers a dispatch."""
    ACCEPT = "accept"
    REJECT = "reject"
    RAISE = "raise"      # Simulated link failure


class InMemoryTransport(AgentTransport):
    """Records every message; answers dispatches according to per-agent policy."""

    def __init__(self, default_policy: AckPolicy = AckPolicy.ACCEPT):
        self.default_policy = default_policy
        self._policies: Dict[str, AckPolicy] = {}

        self.sent_dispatches: List[DispatchMessage] = []
        self.planner_beacons: List[PlannerBeacon] = []

    def set_policy(self, agent_id: str, policy: AckPolicy) -> None:
        self._policies[agent_id] = policy

    def last_dispatch(self, agent_id: str) -> DispatchMessage:
        for message in reversed(self.sent_dispatches):
            if message.agent_id == agent_id:
                return message
        raise KeyError(agent_id)

    async def send_dispatch(self, message: DispatchMessage) -> bool:
        self.sent_dispatches.append(message)
        policy = self._policies.get(message.agent_id, self.default_policy)
        logger.debug(f"Dispatch {message.sequence} -> {message.agent_id}: {policy.value}")

        if policy == AckPolicy.RAISE:
            raise ConnectionError(f"link to {message.agent_id} is down")
        return policy == AckPolicy.ACCEPT

    async def publish_planner_beacon(self, beacon: PlannerBeacon) -> None:
        self.planner_beacons.append(beacon)
