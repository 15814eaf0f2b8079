"""Conversation agent answering nutrition questions through the tool-use loop."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from nutriagent.agents.base import Agent
from nutriagent.core.models import BusMessage, ChatTurn
from nutriagent.orchestration.prompts import ITERATION_LIMIT_MESSAGE
from nutriagent.orchestration.tool_loop import pipeline_event

if TYPE_CHECKING:
    from nutriagent.core.message_bus import MessageBus
    from nutriagent.core.models import AgentDescriptor
    from nutriagent.orchestration.tool_loop import ToolUseLoop

logger = logging.getLogger(__name__)


class NutriAgent(Agent):
    """Owns one conversation and answers its messages one after another.

    Conversation history lives on the agent, so it survives channel
    reconnects but not the agent itself. Replies and progress envelopes are
    sent back to whoever sent the chat message.
    """

    def __init__(
        self,
        descriptor: AgentDescriptor,
        bus: MessageBus,
        loop_factory: Callable[[], ToolUseLoop],
    ) -> None:
        super().__init__(descriptor, bus)
        self._loop_factory = loop_factory
        self.history: List[ChatTurn] = []

    async def handle_message(self, message: BusMessage) -> None:
        if message.payload.get("type", "chat") != "chat":
            return
        content = message.payload.get("content")
        if not content:
            return

        async def observe(event: Dict[str, Any]) -> None:
            await self._reply(message, event)

        working = list(self.history)
        try:
            result = await self._loop_factory().respond(working, str(content), observe)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Conversation %s failed: %s", self.conversation, exc)
            await self._reply(message, pipeline_event("done", "complete", "Error encountered"))
            await self._reply(message, {"type": "error", "message": f"Sorry, something went wrong: {exc}"})
            return

        if result.exhausted:
            working.append(ChatTurn(role="assistant", content=result.content))
            await self._reply(message, pipeline_event("done", "complete", ITERATION_LIMIT_MESSAGE))
        else:
            await self._reply(message, pipeline_event("done", "complete", "Response ready"))
        self.history = working
        await self._reply(message, {"type": "response", "content": result.content})

    async def _reply(self, message: BusMessage, payload: Dict[str, Any]) -> None:
        await self.send(
            BusMessage(
                sender_id=self.agent_id,
                recipient_id=message.sender_id,
                payload=payload,
                correlation_id=message.correlation_id,
            )
        )
