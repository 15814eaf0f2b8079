"""Mailbox-driven agent base used by the orchestrator."""
from __future__ import annotations

import abc
import asyncio
import logging
from typing import Optional

from nutriagent.core.message_bus import MessageBus
from nutriagent.core.models import AgentDescriptor, AgentState, BusMessage

logger = logging.getLogger(__name__)


class Agent(abc.ABC):
    """Agent consuming its bus mailbox in a background task.

    Messages are taken one at a time, so a message that arrives while
    another is being handled waits for it to finish.
    """

    poll_interval = 0.5

    def __init__(self, descriptor: AgentDescriptor, bus: MessageBus) -> None:
        self.descriptor = descriptor
        self._bus = bus
        self._runner: Optional[asyncio.Task[None]] = None
        self._stopping = asyncio.Event()

    @property
    def agent_id(self) -> str:
        return self.descriptor.agent_id

    @property
    def conversation(self) -> str:
        return self.descriptor.conversation

    async def start(self) -> None:
        """Open the mailbox and return once the agent accepts messages."""
        if self._runner is not None:
            return
        ready = asyncio.Event()
        self._stopping.clear()
        self._runner = asyncio.create_task(self._consume(ready))
        await ready.wait()

    async def stop(self) -> None:
        """Let the message in flight finish, then close the mailbox."""
        if self._runner is None:
            return
        self.descriptor.state = AgentState.STOPPING
        self._stopping.set()
        await self._runner
        self._runner = None

    async def _consume(self, ready: asyncio.Event) -> None:
        try:
            async with self._bus.deliver(self.agent_id) as inbox:
                self.descriptor.state = AgentState.RUNNING
                ready.set()
                while not self._stopping.is_set():
                    try:
                        message = await asyncio.wait_for(inbox.get(), timeout=self.poll_interval)
                    except asyncio.TimeoutError:
                        continue
                    await self.handle_message(message)
                    self.descriptor.task_count += 1
        except Exception as exc:  # noqa: BLE001
            logger.exception("Agent %s crashed", self.agent_id)
            self.descriptor.state = AgentState.FAILED
            self.descriptor.last_error = str(exc)
        else:
            self.descriptor.state = AgentState.STOPPED
        finally:
            ready.set()

    async def send(self, message: BusMessage) -> None:
        await self._bus.send(message)

    @abc.abstractmethod
    async def handle_message(self, message: BusMessage) -> None:
        """Process one message taken from the mailbox."""
