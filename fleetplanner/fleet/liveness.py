"""
Beacon-driven liveness tracking.

Each agent moves alive -> suspected_lost -> lost as its last beacon ages,
and back to alive as soon as a fresh beacon arrives. The monitor only
changes liveness; moving a lost agent's tasks is the coordinator's job.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Iterable, List

from loguru import logger

from fleetplanner.fleet.agent_record import AgentRecord, Liveness


class LivenessEventType(Enum):
    """Liveness transitions worth reporting."""
    SUSPECTED_LOST = auto()
    LOST = auto()
    RECOVERED = auto()


@dataclass
class LivenessEvent:
    """A liveness transition."""

    event_type: LivenessEventType
    agent_id: str
    beacon_age: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.name,
            "agent_id": self.agent_id,
            "beacon_age": self.beacon_age,
            "timestamp": self.timestamp,
        }


class LivenessMonitor:
    """
    Liveness state machine over agent records.

    Records are never removed for timing out; a lost agent keeps its
    record so it can recover.
    """

    def __init__(self, beacon_timeout: float):
        """
        Initialize monitor.

        Args:
            beacon_timeout: Beacon age (seconds) after which an agent is lost;
                half of it marks the agent as suspected lost
        """
        self.beacon_timeout = beacon_timeout
        self.suspect_after = beacon_timeout / 2.0

        self._lost_count = 0
        self._recovered_count = 0
        self._suspected_count = 0

    def record_beacon(self, agent: AgentRecord, now: float) -> List[LivenessEvent]:
        """
        Note that a beacon arrived (the record is already updated).

        Returns:
            A RECOVERED event if the agent was not alive
        """
        if agent.liveness == Liveness.ALIVE:
            return []

        previous = agent.liveness
        agent.liveness = Liveness.ALIVE
        self._recovered_count += 1

        logger.info(f"Agent {agent.agent_id} recovered ({previous.value} -> alive)")
        return [LivenessEvent(LivenessEventType.RECOVERED, agent.agent_id, timestamp=now)]

    def check_beacon_timeout(self, agent: AgentRecord, now: float) -> List[LivenessEvent]:
        """Update one agent's liveness from its beacon age."""
        age = now - agent.last_beacon_time

        if age > self.beacon_timeout:
            if agent.liveness == Liveness.LOST:
                return []
            agent.liveness = Liveness.LOST
            self._lost_count += 1
            logger.warning(f"Agent {agent.agent_id} lost: last beacon {age:.1f}s ago "
                           f"(timeout {self.beacon_timeout:.1f}s)")
            return [LivenessEvent(LivenessEventType.LOST, agent.agent_id, age, now)]

        if age > self.suspect_after and agent.liveness == Liveness.ALIVE:
            agent.liveness = Liveness.SUSPECTED_LOST
            self._suspected_count += 1
            logger.info(f"Agent {agent.agent_id} suspected lost: last beacon {age:.1f}s ago")
            return [LivenessEvent(LivenessEventType.SUSPECTED_LOST, agent.agent_id, age, now)]

        return []

    def check_beacons_timeout(
        self,
        agents: Iterable[AgentRecord],
        now: float
    ) -> List[LivenessEvent]:
        """
        Sweep every agent.

        Returns:
            Transitions, in agent id order
        """
        events: List[LivenessEvent] = []
        for agent in sorted(agents, key=lambda a: a.agent_id):
            events.extend(self.check_beacon_timeout(agent, now))
        return events

    def get_statistics(self) -> Dict[str, Any]:
        """Get monitor statistics."""
        return {
            "beacon_timeout": self.beacon_timeout,
            "lost_events": self._lost_count,
            "suspected_events": self._suspected_count,
            "recoveries": self._recovered_count,
        }
