"""LLM client pool and chat backend for OpenAI-compatible endpoints."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Protocol, Sequence

from openai import AsyncOpenAI

from nutriagent.config import LLMConfig
from nutriagent.core.models import AssistantReply, ToolCall

logger = logging.getLogger(__name__)


class LLMBackend(Protocol):
    """Request/response contract the orchestration loop relies on."""

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
    ) -> AssistantReply: ...


def normalize_reply(message: Mapping[str, Any]) -> AssistantReply:
    """Convert a raw chat-completions message into an :class:`AssistantReply`.

    Some reasoning models (GLM-4.x among them) leave ``content`` empty and put
    the answer in ``reasoning_content``; that field is folded into
    ``content`` here and nowhere else.
    """
    content = message.get("content") or ""
    if not content and message.get("reasoning_content"):
        content = message["reasoning_content"]

    calls: List[ToolCall] = []
    for index, raw in enumerate(message.get("tool_calls") or []):
        function = raw.get("function") or {}
        arguments = function.get("arguments")
        if arguments is None:
            arguments = "{}"
        calls.append(
            ToolCall(
                id=str(raw.get("id") or f"call_{index}"),
                name=str(function.get("name") or ""),
                arguments=arguments if isinstance(arguments, str) else json.dumps(arguments, ensure_ascii=False),
            )
        )
    return AssistantReply(content=str(content), tool_calls=calls)


class LLMPool:
    """Manages shared LLM clients with concurrency limiting."""

    def __init__(self) -> None:
        self._configs: Dict[str, LLMConfig] = {}
        self._clients: Dict[str, AsyncOpenAI] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}

    def register(self, name: str, config: LLMConfig) -> None:
        """Register an OpenAI-compatible model configuration."""
        self._configs[name] = config
        self._semaphores[name] = asyncio.Semaphore(config.max_concurrent)

    def config_for(self, name: str) -> LLMConfig:
        if name not in self._configs:
            raise KeyError(f"Model '{name}' not registered in LLM pool")
        return self._configs[name]

    @asynccontextmanager
    async def acquire(self, model_name: str) -> AsyncIterator[AsyncOpenAI]:
        """Acquire access to a model client with concurrency control."""
        config = self.config_for(model_name)

        semaphore = self._semaphores[model_name]
        async with semaphore:
            # Lazy initialization on first use
            client = self._clients.get(model_name)
            if client is None:
                client = AsyncOpenAI(api_key=config.api_key or "unset", base_url=config.base_url)
                self._clients[model_name] = client
            yield client

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()


class ChatBackend:
    """Chat-completions backend with tool calling enabled."""

    def __init__(self, pool: LLMPool, model_name: str) -> None:
        self._pool = pool
        self.model_name = model_name

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
    ) -> AssistantReply:
        config = self._pool.config_for(self.model_name)
        request: Dict[str, Any] = {
            "model": config.model,
            "messages": list(messages),
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if tools:
            request["tools"] = list(tools)
            request["tool_choice"] = "auto"

        async with self._pool.acquire(self.model_name) as client:
            response = await client.chat.completions.create(**request)

        message = response.choices[0].message
        logger.debug("LLM %s finished with %s", config.model, response.choices[0].finish_reason)
        return normalize_reply(message.model_dump())
