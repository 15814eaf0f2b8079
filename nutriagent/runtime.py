"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from nutriagent.a2a.card import build_agent_card
from nutriagent.a2a.server import A2AService
from nutriagent.a2a.tasks import TaskManager
from nutriagent.a2a.types import AgentCard
from nutriagent.config import config
from nutriagent.core.message_bus import MessageBus
from nutriagent.mcp.backends import FailoverToolBackend, LocalToolBackend, RemoteToolBackend, ToolBackend
from nutriagent.mcp.client import McpClient
from nutriagent.mcp.gateway import McpGateway, SessionRegistry
from nutriagent.orchestration.orchestrator import Orchestrator
from nutriagent.orchestration.tool_loop import ToolUseLoop
from nutriagent.services.llm_pool import ChatBackend, LLMPool
from nutriagent.services.openfoodfacts import OpenFoodFactsClient
from nutriagent.tools.food import build_food_registry
from nutriagent.tools.registry import ToolRegistry


@lru_cache
def get_bus() -> MessageBus:
    return MessageBus()


@lru_cache
def get_catalog_client() -> OpenFoodFactsClient:
    return OpenFoodFactsClient(config.off_base_url)


@lru_cache
def get_tool_registry() -> ToolRegistry:
    return build_food_registry(get_catalog_client())


@lru_cache
def get_gateway() -> McpGateway:
    return McpGateway(get_tool_registry())


@lru_cache
def get_session_registry() -> SessionRegistry:
    return SessionRegistry()


@lru_cache
def get_mcp_client() -> McpClient:
    return McpClient(config.mcp_url or "", config.mcp_api_key)


@lru_cache
def get_tool_backend() -> ToolBackend:
    local = LocalToolBackend(get_tool_registry())
    if not config.mcp_url:
        return local
    return FailoverToolBackend(RemoteToolBackend(get_mcp_client()), local)


@lru_cache
def get_llm_pool() -> LLMPool:
    pool = LLMPool()
    pool.register(config.llm.model, config.llm)
    return pool


def new_tool_loop() -> ToolUseLoop:
    return ToolUseLoop(
        ChatBackend(get_llm_pool(), config.llm.model),
        get_tool_backend(),
        max_iterations=config.max_tool_iterations,
        model_label=config.llm.model,
    )


@lru_cache
def get_task_manager() -> TaskManager:
    return TaskManager()


@lru_cache
def get_a2a_service() -> A2AService:
    return A2AService(get_task_manager(), new_tool_loop)


@lru_cache
def get_agent_card() -> AgentCard:
    return build_agent_card(
        config.public_base_url,
        auth_enabled=bool(config.a2a_api_key),
        model_label=config.llm.model,
    )


@lru_cache
def get_orchestrator() -> Orchestrator:
    return Orchestrator(bus=get_bus(), loop_factory=new_tool_loop)


async def close_clients() -> None:
    """Release outbound HTTP clients that were created."""
    if config.mcp_url and get_mcp_client.cache_info().currsize:
        await get_mcp_client().close()
    if get_catalog_client.cache_info().currsize:
        await get_catalog_client().aclose()
    if get_llm_pool.cache_info().currsize:
        await get_llm_pool().aclose()


def get_mcp_api_key() -> Optional[str]:
    return config.mcp_api_key


def get_a2a_api_key() -> Optional[str]:
    return config.a2a_api_key
