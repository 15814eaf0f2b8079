"""Orchestration loop and LLM reply normalization."""
from __future__ import annotations

import json

import httpx
import pytest
from openai import AsyncOpenAI

from nutriagent.config import LLMConfig
from nutriagent.core.models import ChatTurn
from nutriagent.mcp.backends import LocalToolBackend
from nutriagent.orchestration.tool_loop import ToolUseLoop
from nutriagent.services.llm_pool import ChatBackend, LLMPool, normalize_reply

from conftest import COLA, NUTELLA, ScriptedLLM, text_reply, tool_reply


def make_loop(llm, registry, max_iterations: int = 8) -> ToolUseLoop:
    return ToolUseLoop(llm, LocalToolBackend(registry), max_iterations=max_iterations, model_label="test-model")


@pytest.mark.anyio
async def test_direct_answer_appends_user_and_assistant(registry) -> None:
    llm = ScriptedLLM(text_reply("Hi there"))
    history = []

    result = await make_loop(llm, registry).respond(history, "hello")

    assert result.content == "Hi there"
    assert result.iterations == 0
    assert not result.exhausted
    assert [turn.role for turn in history] == ["user", "assistant"]
    messages = llm.calls[0]["messages"]
    assert messages[0]["role"] == "system"
    assert messages[-1] == {"role": "user", "content": "hello"}
    assert [tool["function"]["name"] for tool in llm.calls[0]["tools"]][:1] == ["get_product_by_barcode"]


@pytest.mark.anyio
async def test_one_tool_turn_per_invocation(registry) -> None:
    llm = ScriptedLLM(
        tool_reply(("get_product_by_barcode", {"barcode": NUTELLA}), ("get_product_by_barcode", {"barcode": COLA})),
        tool_reply(("get_allergen_info", {"barcode": NUTELLA})),
        text_reply("Nutella has more sugar."),
    )
    history = []

    result = await make_loop(llm, registry).respond(history, "compare")

    assert result.iterations == 2
    assert [turn.role for turn in history] == ["user", "assistant", "tool", "tool", "assistant", "tool", "assistant"]
    tool_turns = [turn for turn in history if turn.role == "tool"]
    assert [turn.tool_call_id for turn in tool_turns] == ["call_0", "call_1", "call_0"]
    assert json.loads(tool_turns[0].content)["product_name"] == "Nutella"

    second_request = llm.calls[1]["messages"]
    assert second_request[2]["tool_calls"][0]["function"]["name"] == "get_product_by_barcode"
    assert second_request[3]["role"] == "tool"


@pytest.mark.anyio
async def test_tool_failure_is_fed_back_to_model(registry) -> None:
    llm = ScriptedLLM(
        tool_reply(("get_product_by_barcode", {"barcode": "0000000000000"})),
        text_reply("I could not find that product."),
    )
    history = []

    result = await make_loop(llm, registry).respond(history, "scan")

    assert result.content == "I could not find that product."
    assert "not found" in history[2].content


@pytest.mark.anyio
async def test_malformed_arguments_become_error_payload(registry) -> None:
    llm = ScriptedLLM(text_reply("done"))
    llm.replies.insert(0, tool_reply(("search_products", {})))
    llm.replies[0].tool_calls[0].arguments = "{broken"
    history = []

    await make_loop(llm, registry).respond(history, "search")

    assert "Invalid JSON arguments for search_products" in json.loads(history[2].content)["error"]


@pytest.mark.anyio
async def test_iteration_ceiling_stops_loop(registry) -> None:
    llm = ScriptedLLM(tool_reply(("get_product_by_barcode", {"barcode": NUTELLA}), content="still working"))
    history = []

    result = await make_loop(llm, registry, max_iterations=2).respond(history, "loop forever")

    assert result.exhausted is True
    assert result.iterations == 2
    assert result.content == "still working"
    assert len(llm.calls) == 3
    assert sum(1 for turn in history if turn.role == "tool") == 2


@pytest.mark.anyio
async def test_zero_iterations_never_runs_tools(registry) -> None:
    llm = ScriptedLLM(tool_reply(("get_product_by_barcode", {"barcode": NUTELLA})))
    history = []

    result = await make_loop(llm, registry, max_iterations=0).respond(history, "x")

    assert result.exhausted is True
    assert [turn.role for turn in history] == ["user"]


def test_negative_ceiling_rejected(registry) -> None:
    with pytest.raises(ValueError):
        make_loop(ScriptedLLM(text_reply("")), registry, max_iterations=-1)


@pytest.mark.anyio
async def test_observer_sees_pipeline_in_order(registry) -> None:
    llm = ScriptedLLM(tool_reply(("get_product_by_barcode", {"barcode": NUTELLA})), text_reply("ok"))
    events = []

    async def observer(event):
        events.append(event)

    await make_loop(llm, registry).respond([], "scan", observer)

    summary = [(e["type"], e.get("step") or e.get("status") or e.get("tool")) for e in events]
    assert summary == [
        ("pipeline", "agent"),
        ("status", "thinking"),
        ("pipeline", "llm"),
        ("pipeline", "mcp"),
        ("pipeline", "tools"),
        ("tool_call", "get_product_by_barcode"),
        ("pipeline", "tools"),
        ("pipeline", "llm"),
        ("status", "thinking"),
    ]
    assert events[2]["detail"] == "Reasoning with test-model"
    assert events[6]["status"] == "complete"


@pytest.mark.anyio
async def test_failing_observer_does_not_break_loop(registry) -> None:
    async def observer(event):
        raise RuntimeError("socket closed")

    result = await make_loop(ScriptedLLM(text_reply("fine")), registry).respond([], "hi", observer)

    assert result.content == "fine"


@pytest.mark.anyio
async def test_llm_failure_propagates(registry) -> None:
    llm = ScriptedLLM(RuntimeError("model offline"))

    with pytest.raises(RuntimeError, match="model offline"):
        await make_loop(llm, registry).respond([], "hi")


def test_normalize_reply_uses_reasoning_content() -> None:
    reply = normalize_reply({"role": "assistant", "content": "", "reasoning_content": "Thoughtful answer"})
    assert reply.content == "Thoughtful answer"
    assert reply.tool_calls == []


def test_normalize_reply_prefers_content_and_serializes_arguments() -> None:
    reply = normalize_reply(
        {
            "content": "visible",
            "reasoning_content": "hidden",
            "tool_calls": [{"id": "abc", "function": {"name": "search_products", "arguments": {"query": "tofu"}}}],
        }
    )

    assert reply.content == "visible"
    assert reply.tool_calls[0].id == "abc"
    assert json.loads(reply.tool_calls[0].arguments) == {"query": "tofu"}


def test_chat_turn_serialization() -> None:
    turn = ChatTurn(role="tool", content="{}", tool_call_id="call_0")
    assert turn.to_openai() == {"role": "tool", "content": "{}", "tool_call_id": "call_0"}


@pytest.mark.anyio
async def test_chat_backend_sends_tools_and_parses_reply() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "id": "cmpl-1",
                "object": "chat.completion",
                "created": 0,
                "model": "GLM-4.7-Flash",
                "choices": [
                    {
                        "index": 0,
                        "finish_reason": "tool_calls",
                        "message": {
                            "role": "assistant",
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "call_9",
                                    "type": "function",
                                    "function": {"name": "search_products", "arguments": "{\"query\": \"oat\"}"},
                                }
                            ],
                        },
                    }
                ],
            },
        )

    pool = LLMPool()
    pool.register("GLM-4.7-Flash", LLMConfig(api_key="k", base_url="https://llm.test/v1"))
    pool._clients["GLM-4.7-Flash"] = AsyncOpenAI(
        api_key="k",
        base_url="https://llm.test/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    backend = ChatBackend(pool, "GLM-4.7-Flash")

    reply = await backend.complete(
        [{"role": "user", "content": "oat milk"}],
        [{"type": "function", "function": {"name": "search_products", "parameters": {"type": "object"}}}],
    )
    await backend.complete([{"role": "user", "content": "hi"}], [])

    assert reply.tool_calls[0].name == "search_products"
    assert reply.content == ""
    assert seen[0]["tool_choice"] == "auto"
    assert "tools" not in seen[1] and "tool_choice" not in seen[1]
    await pool.aclose()
