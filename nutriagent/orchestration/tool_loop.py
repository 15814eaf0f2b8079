"""Bounded model <-> tool round-trip loop."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from nutriagent.core.models import AssistantReply, ChatTurn
from nutriagent.mcp.backends import ToolBackend
from nutriagent.orchestration.prompts import SYSTEM_PROMPT
from nutriagent.services.llm_pool import LLMBackend
from nutriagent.tools.registry import mcp_to_openai

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 8

Observer = Callable[[Dict[str, Any]], Awaitable[None]]


def pipeline_event(step: str, status: str, detail: str = "") -> Dict[str, Any]:
    return {"type": "pipeline", "step": step, "status": status, "detail": detail}


@dataclass(slots=True)
class LoopResult:
    content: str
    iterations: int
    exhausted: bool = False


class ToolUseLoop:
    """Alternate between the language model and tool execution.

    ``run`` mutates the supplied history in place: every assistant turn that
    requested tools, one ``tool`` turn per invocation and, when the model
    converged, the final assistant turn. At most ``max_iterations`` tool
    rounds are executed; when the model still wants tools after that the loop
    stops and returns the last content with ``exhausted`` set.

    Progress events go to the optional observer. They are advisory, so a
    failing observer never interrupts the loop.
    """

    def __init__(
        self,
        llm: LLMBackend,
        tools: ToolBackend,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        system_prompt: str = SYSTEM_PROMPT,
        model_label: str = "the language model",
    ) -> None:
        if max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        self._llm = llm
        self._tools = tools
        self.max_iterations = max_iterations
        self._system_prompt = system_prompt
        self._model_label = model_label

    async def respond(
        self,
        history: List[ChatTurn],
        utterance: str,
        observer: Optional[Observer] = None,
    ) -> LoopResult:
        """Append a user utterance to ``history`` and run the loop on it."""
        history.append(ChatTurn(role="user", content=utterance))
        await self._emit(observer, pipeline_event("agent", "active", "Processing your query"))
        await self._emit(observer, {"type": "status", "status": "thinking"})
        return await self.run(history, observer)

    async def run(self, history: List[ChatTurn], observer: Optional[Observer] = None) -> LoopResult:
        catalog = [mcp_to_openai(tool) for tool in await self._tools.list_tools()]

        await self._emit(observer, pipeline_event("llm", "active", f"Reasoning with {self._model_label}"))
        reply = await self._complete(history, catalog)

        rounds = 0
        while reply.tool_calls:
            if rounds >= self.max_iterations:
                logger.warning("Tool loop stopped after %d rounds without a final answer", rounds)
                return LoopResult(content=reply.content, iterations=rounds, exhausted=True)
            rounds += 1
            history.append(reply.as_turn())

            await self._emit(observer, pipeline_event("mcp", "active", "Routing tool calls via MCP Server"))
            for call in reply.tool_calls:
                await self._emit(observer, pipeline_event("tools", "active", f"Executing {call.name}"))
                await self._emit(observer, {"type": "tool_call", "tool": call.name, "args": call.arguments})
                result = await self._run_tool(call.name, call.arguments)
                await self._emit(observer, pipeline_event("tools", "complete", f"{call.name} returned data"))
                history.append(ChatTurn(role="tool", content=result, tool_call_id=call.id))

            await self._emit(observer, pipeline_event("llm", "active", "Analyzing tool results"))
            await self._emit(observer, {"type": "status", "status": "thinking"})
            reply = await self._complete(history, catalog)

        history.append(ChatTurn(role="assistant", content=reply.content))
        return LoopResult(content=reply.content, iterations=rounds)

    async def _complete(self, history: List[ChatTurn], catalog: List[Dict[str, Any]]) -> AssistantReply:
        messages = [{"role": "system", "content": self._system_prompt}]
        messages.extend(turn.to_openai() for turn in history)
        return await self._llm.complete(messages, catalog)

    async def _run_tool(self, name: str, raw_arguments: str) -> str:
        try:
            arguments = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError as exc:
            return json.dumps({"error": f"Invalid JSON arguments for {name}: {exc}"})
        if not isinstance(arguments, dict):
            return json.dumps({"error": f"Arguments for {name} must be a JSON object"})

        outcome = await self._tools.call_tool(name, arguments)
        if outcome.is_error:
            logger.info("Tool %s returned an error result", name)
        return outcome.text

    @staticmethod
    async def _emit(observer: Optional[Observer], event: Dict[str, Any]) -> None:
        if observer is None:
            return
        try:
            await observer(event)
        except Exception:  # noqa: BLE001
            logger.warning("Progress observer failed for %s event", event.get("type"), exc_info=True)
