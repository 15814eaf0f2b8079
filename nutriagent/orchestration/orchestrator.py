"""Orchestrator provisioning and supervising one agent per conversation."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional

from nutriagent.agents.nutri_agent import NutriAgent
from nutriagent.core.message_bus import MessageBus
from nutriagent.core.models import AgentDescriptor, AgentState, BusMessage
from nutriagent.orchestration.tool_loop import ToolUseLoop

logger = logging.getLogger(__name__)


class Orchestrator:
    """Coordinate conversation agent lifecycle and route channel messages.

    A conversation is owned by at most one live agent. Spawning and starting
    happen under one lock, so concurrent first contact on the same name
    resolves to the same agent.
    """

    def __init__(
        self,
        *,
        bus: MessageBus,
        loop_factory: Callable[[], ToolUseLoop],
    ) -> None:
        self._bus = bus
        self._loop_factory = loop_factory
        self._agents: Dict[str, NutriAgent] = {}
        self._lock = asyncio.Lock()

    @property
    def bus(self) -> MessageBus:
        return self._bus

    async def conversation_agent(self, conversation: str) -> AgentDescriptor:
        """Return the agent owning ``conversation``, spawning it on first use."""
        async with self._lock:
            agent = self._agents.get(conversation)
            if agent is not None and agent.descriptor.state is AgentState.RUNNING:
                return agent.descriptor
            if agent is not None:
                logger.warning(
                    "Replacing agent %s for conversation %s (%s)",
                    agent.agent_id,
                    conversation,
                    agent.descriptor.state.name,
                )

            descriptor = AgentDescriptor(agent_id=f"nutri-agent-{uuid.uuid4()}", conversation=conversation)
            agent = NutriAgent(descriptor, self._bus, self._loop_factory)
            self._agents[conversation] = agent
            await agent.start()
        logger.info("Spawned agent %s for conversation %s", descriptor.agent_id, conversation)
        return descriptor

    async def terminate_all(self) -> None:
        """Shutdown every agent currently managed by the orchestrator."""
        async with self._lock:
            agents = list(self._agents.values())
            self._agents.clear()
        await asyncio.gather(*(agent.stop() for agent in agents), return_exceptions=True)

    def list_agents(self) -> List[AgentDescriptor]:
        return [agent.descriptor for agent in self._agents.values()]

    def get_conversation(self, conversation: str) -> Optional[NutriAgent]:
        return self._agents.get(conversation)

    async def dispatch(
        self,
        sender_id: str,
        recipient_id: str,
        payload: dict,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Send a bus message on behalf of a channel client."""
        message = BusMessage(
            sender_id=sender_id,
            recipient_id=recipient_id,
            payload=payload,
            correlation_id=correlation_id,
        )
        if not await self._bus.send(message):
            logger.warning("Agent %s has no open mailbox; message dropped", recipient_id)
