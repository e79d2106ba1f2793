"""
Asyncio runtime around the mission coordinator.

All external events are messages on one inbound queue and are handled one
at a time. After each handler the coordinator's outbox is flushed: the
dispatches are sent concurrently and their acks come back through the same
queue. Two periodic loops run next to the message loop:
- the liveness sweep (every ``sweep_interval`` seconds)
- the planner beacon (``planner_beacon_rate`` Hz)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from fleetplanner.core.message import (
    AgentBeacon,
    BatteryCheckRequest,
    CancelTaskRequest,
    DispatchAck,
    DispatchMessage,
    MissionOverMessage,
    NewTaskRequest,
    TaskResultMessage,
    UpdateTaskRequest,
)
from fleetplanner.errors import (
    InvalidBeacon,
    InvalidTaskParams,
    MissionOver,
    PlannerError,
    TaskNotAtHead,
    UnknownAgent,
    UnknownTask,
)
from fleetplanner.mission.coordinator import MissionCoordinator
from fleetplanner.mission.transport import AgentTransport


# Reported back to the requester instead of being logged and dropped
_REQUESTER_ERRORS = (InvalidTaskParams, MissionOver)

# Stale references from agents or clients
_STALE_ERRORS = (UnknownAgent, UnknownTask, TaskNotAtHead, InvalidBeacon)

# Nobody waits on these, so they get no reply future
_FIRE_AND_FORGET = (AgentBeacon, MissionOverMessage)


@dataclass
class _Envelope:
    message: Any
    reply: Optional[asyncio.Future] = None


class MissionRuntime:
    """
    Single-writer actor driving a MissionCoordinator.

    Handlers are synchronous and run on the event loop thread, one message
    at a time, so events for one agent are applied in arrival order.
    """

    def __init__(self, coordinator: MissionCoordinator, transport: AgentTransport):
        """
        Initialize runtime.

        Args:
            coordinator: Coordinator owning the mission state
            transport: Channel to the agents
        """
        self.coordinator = coordinator
        self.transport = transport
        self.settings = coordinator.settings

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._sends: set = set()

        self._processed = 0
        self._errors = 0
        self._stale = 0
        self._sweeps = 0

    # ========== Submission ==========

    def submit(self, message: Any) -> Optional[asyncio.Future]:
        """
        Enqueue a message for the coordinator.

        Returns:
            Future resolved with the handler's return value, or with the
            validation error for new task and update requests. None for
            beacons and mission-over messages, whose errors are only logged.
        """
        reply = None
        if not isinstance(message, _FIRE_AND_FORGET):
            reply = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Envelope(message, reply))
        return reply

    async def request(self, message: Any) -> Any:
        """Submit and wait for the reply."""
        reply = self.submit(message)
        if reply is None:
            return None
        return await reply

    # ========== Loops ==========

    async def run_async(self) -> None:
        """Run the message, sweep and planner beacon loops until stopped."""
        self._running = True
        self._tasks = [
            asyncio.create_task(self._sweep_loop()),
            asyncio.create_task(self._beacon_loop()),
        ]
        logger.info(f"Mission runtime started for {self.coordinator.catalog.mission_id}")

        try:
            while self._running:
                try:
                    envelope = await asyncio.wait_for(self._inbox.get(), timeout=0.1)
                except asyncio.TimeoutError:
                    continue
                await self.process(envelope)
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
            logger.info("Mission runtime stopped")

    def stop(self) -> None:
        """Stop all loops after the message in hand."""
        self._running = False

    async def drain(self) -> None:
        """Process queued messages (and the acks they produce) until idle."""
        while True:
            while not self._inbox.empty():
                await self.process(self._inbox.get_nowait())
            if not self._sends:
                break
            await asyncio.gather(*list(self._sends), return_exceptions=True)

    async def process(self, envelope: _Envelope) -> None:
        """Handle one message, then flush the outbox."""
        self._processed += 1
        try:
            result = self._handle(envelope.message)
        except _REQUESTER_ERRORS as e:
            logger.warning(f"Request rejected: {e}")
            self._resolve(envelope, error=e)
        except _STALE_ERRORS as e:
            self._stale += 1
            logger.warning(f"Ignoring stale report: {e}")
            self._resolve(envelope, result=None)
        except PlannerError as e:
            self._errors += 1
            logger.error(f"Handler error: {e}")
            self._resolve(envelope, error=e)
        except Exception as e:
            self._errors += 1
            logger.error(f"Unexpected error handling {type(envelope.message).__name__}: {e}")
            self._resolve(envelope, error=e)
        else:
            self._resolve(envelope, result=result)

        self._flush()

    def _handle(self, message: Any) -> Any:
        c = self.coordinator

        if isinstance(message, AgentBeacon):
            c.beacon(message)
            return None
        if isinstance(message, DispatchAck):
            return c.dispatch_ack(message.agent_id, message.sequence, message.accepted)
        if isinstance(message, TaskResultMessage):
            return c.task_result(message.agent_id, message.task_id, message.outcome).task_id
        if isinstance(message, NewTaskRequest):
            return c.incoming_task(message.spec)
        if isinstance(message, UpdateTaskRequest):
            return c.update_task_params(message.task_id, message.spec).task_id
        if isinstance(message, CancelTaskRequest):
            c.cancel_task(message.task_id)
            return None
        if isinstance(message, BatteryCheckRequest):
            return c.battery_check(message.agent_id)
        if isinstance(message, MissionOverMessage):
            c.mission_over(message.value)
            return None

        raise TypeError(f"Unsupported message {type(message).__name__}")

    @staticmethod
    def _resolve(envelope: _Envelope, result: Any = None, error: Exception = None) -> None:
        if envelope.reply is None or envelope.reply.done():
            return
        if error is not None:
            envelope.reply.set_exception(error)
        else:
            envelope.reply.set_result(result)

    # ========== Outbound ==========

    def _flush(self) -> None:
        for message in self.coordinator.drain_dispatches():
            task = asyncio.create_task(self._send(message))
            self._sends.add(task)
            task.add_done_callback(self._sends.discard)

    async def _send(self, message: DispatchMessage) -> None:
        try:
            accepted = await self.transport.send_dispatch(message)
        except Exception as e:
            logger.warning(f"Dispatch {message.sequence} to {message.agent_id} failed: {e}")
            accepted = False

        ack = DispatchAck(agent_id=message.agent_id, sequence=message.sequence,
                          accepted=bool(accepted))
        self._inbox.put_nowait(_Envelope(ack))

    def sweep(self) -> List[Any]:
        """Run one liveness sweep and send the dispatches it produced."""
        events = self.coordinator.check_beacons_timeout()
        self._sweeps += 1
        self._flush()
        return events

    async def _sweep_loop(self) -> None:
        interval = self.settings.sweep_interval

        while True:
            try:
                start = time.time()
                self.sweep()

                elapsed = time.time() - start
                await asyncio.sleep(max(0.0, interval - elapsed))

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Sweep loop error: {e}")
                await asyncio.sleep(interval)

    async def _beacon_loop(self) -> None:
        interval = 1.0 / self.settings.planner_beacon_rate

        while True:
            try:
                await self.transport.publish_planner_beacon(self.coordinator.planner_beacon())
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Planner beacon loop error: {e}")
                await asyncio.sleep(interval)

    def get_statistics(self) -> Dict[str, Any]:
        """Get runtime statistics."""
        return {
            "running": self._running,
            "processed": self._processed,
            "errors": self._errors,
            "stale_reports": self._stale,
            "sweeps": self._sweeps,
            "inbox_size": self._inbox.qsize(),
            "sends_in_flight": len(self._sends),
        }
