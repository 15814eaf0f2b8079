"""Shared fixtures: a stubbed catalog, scripted LLM backends and an app client."""
from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from nutriagent.a2a.card import build_agent_card
from nutriagent.a2a.server import A2AService
from nutriagent.a2a.tasks import TaskManager
from nutriagent.core.message_bus import MessageBus
from nutriagent.core.models import AssistantReply, ToolCall
from nutriagent.main import app
from nutriagent.mcp.backends import LocalToolBackend
from nutriagent.mcp.gateway import McpGateway, SessionRegistry
from nutriagent.orchestration.orchestrator import Orchestrator
from nutriagent.orchestration.tool_loop import ToolUseLoop
from nutriagent.runtime import (
    get_a2a_api_key,
    get_a2a_service,
    get_agent_card,
    get_gateway,
    get_mcp_api_key,
    get_orchestrator,
    get_session_registry,
)
from nutriagent.services.openfoodfacts import OpenFoodFactsClient
from nutriagent.tools.food import build_food_registry

NUTELLA = "3017620422003"
COLA = "5449000000996"
MISSING = "0000000000000"

PRODUCTS: Dict[str, Dict[str, Any]] = {
    NUTELLA: {
        "code": NUTELLA,
        "product_name": "Nutella",
        "brands": "Ferrero",
        "categories": "Spreads, Sweet spreads",
        "nutriscore_grade": "e",
        "nova_group": 4,
        "ecoscore_grade": "d",
        "image_front_url": "https://images.example/nutella.jpg",
        "nutriments": {
            "energy-kcal_100g": 539,
            "fat_100g": 30.9,
            "saturated-fat_100g": 10.6,
            "sugars_100g": 56.3,
            "proteins_100g": 6.3,
            "salt_100g": 0.107,
        },
        "ingredients_text": "Sugar, palm oil, hazelnuts 13%, skimmed milk powder 8.7%",
        "allergens": "en:milk,en:nuts",
        "allergens_tags": ["en:milk", "en:nuts"],
        "traces": "en:gluten",
        "traces_tags": ["en:gluten"],
        "quantity": "400 g",
    },
    COLA: {
        "code": COLA,
        "product_name_en": "Coca-Cola",
        "brands": "Coca-Cola",
        "nutriscore_grade": "e",
        "nutriments": {"energy-kcal_100g": 42, "sugars_100g": 10.6},
    },
}


class CatalogStub:
    """MockTransport handler imitating the OpenFoodFacts read API."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.unavailable = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unavailable:
            return httpx.Response(503)

        path = request.url.path
        if path.startswith("/api/v2/product/"):
            code = path.rsplit("/", 1)[-1][: -len(".json")]
            product = PRODUCTS.get(code)
            if product is None:
                return httpx.Response(404, json={"status": 0, "status_verbose": "product not found"})
            return httpx.Response(200, json={"status": 1, "product": product})
        if path == "/cgi/search.pl":
            terms = request.url.params.get("search_terms", "").lower()
            hits = [p for p in PRODUCTS.values() if terms in json.dumps(p).lower()]
            return httpx.Response(200, json={"count": len(hits), "products": hits})
        if path.startswith("/category/"):
            if path == "/category/sweet-spreads.json":
                return httpx.Response(200, json={"count": 1, "products": [PRODUCTS[NUTELLA]]})
            return httpx.Response(200, json={"count": 0, "products": []})
        return httpx.Response(404)


class ScriptedLLM:
    """LLM backend replaying canned replies; the last one repeats forever."""

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, tools) -> AssistantReply:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": list(tools)})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def tool_reply(*calls: tuple, content: str = "") -> AssistantReply:
    """Build a reply requesting ``(name, arguments)`` tool calls."""
    return AssistantReply(
        content=content,
        tool_calls=[
            ToolCall(id=f"call_{index}", name=name, arguments=json.dumps(arguments))
            for index, (name, arguments) in enumerate(calls)
        ],
    )


def text_reply(content: str) -> AssistantReply:
    return AssistantReply(content=content)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def catalog_stub() -> CatalogStub:
    return CatalogStub()


@pytest.fixture
def catalog(catalog_stub: CatalogStub) -> OpenFoodFactsClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(catalog_stub))
    return OpenFoodFactsClient("https://off.test", http_client=http_client)


@pytest.fixture
def registry(catalog: OpenFoodFactsClient):
    return build_food_registry(catalog)


@pytest.fixture
def api(registry):
    """TestClient over the real app with every runtime dependency swapped out.

    Attributes on the returned namespace (``llm``, ``mcp_key``, ``a2a_key``)
    are read at call time, so tests can change them before a request.
    """
    state = SimpleNamespace(
        llm=ScriptedLLM(text_reply("Hello from NutriAgent")),
        mcp_key=None,
        a2a_key=None,
        max_iterations=3,
    )

    def loop_factory() -> ToolUseLoop:
        return ToolUseLoop(state.llm, LocalToolBackend(registry), max_iterations=state.max_iterations)

    state.gateway = McpGateway(registry)
    state.sessions = SessionRegistry()
    state.tasks = TaskManager()
    state.orchestrator = Orchestrator(bus=MessageBus(), loop_factory=loop_factory)
    service = A2AService(state.tasks, loop_factory)
    card = build_agent_card("http://testserver", auth_enabled=False)

    app.dependency_overrides.update(
        {
            get_gateway: lambda: state.gateway,
            get_session_registry: lambda: state.sessions,
            get_mcp_api_key: lambda: state.mcp_key,
            get_a2a_api_key: lambda: state.a2a_key,
            get_a2a_service: lambda: service,
            get_orchestrator: lambda: state.orchestrator,
            get_agent_card: lambda: card,
        }
    )
    try:
        with TestClient(app) as client:
            state.client = client
            yield state
    finally:
        app.dependency_overrides.clear()
