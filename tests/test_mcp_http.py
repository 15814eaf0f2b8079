"""The /mcp HTTP binding and the client that talks to it."""
from __future__ import annotations

import json

import httpx
import pytest

from nutriagent.api.mcp import keepalive_comments
from nutriagent.core.errors import McpProtocolError, McpTransportError
from nutriagent.main import app
from nutriagent.mcp.client import SESSION_HEADER, McpClient
from nutriagent.mcp.gateway import INVALID_PARAMS, McpGateway, SessionRegistry
from nutriagent.runtime import get_gateway, get_mcp_api_key, get_session_registry

from conftest import MISSING, NUTELLA

PING = {"jsonrpc": "2.0", "id": 1, "method": "ping"}


def test_post_issues_session(api) -> None:
    response = api.client.post("/mcp", json=PING)

    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": {}}
    assert response.headers[SESSION_HEADER]


def test_known_session_is_reused_and_unknown_replaced(api) -> None:
    first = api.client.post("/mcp", json=PING).headers[SESSION_HEADER]

    again = api.client.post("/mcp", json=PING, headers={SESSION_HEADER: first})
    forged = api.client.post("/mcp", json=PING, headers={SESSION_HEADER: "not-a-session"})

    assert again.headers[SESSION_HEADER] == first
    assert forged.headers[SESSION_HEADER] not in (first, "not-a-session")


def test_notification_is_accepted_without_body(api) -> None:
    response = api.client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})

    assert response.status_code == 202
    assert response.content == b""
    assert response.headers[SESSION_HEADER]


def test_batch_over_http(api) -> None:
    response = api.client.post(
        "/mcp",
        json=[
            {"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "get_product_by_barcode", "arguments": {"barcode": NUTELLA}}},
        ],
    )

    body = response.json()
    assert [item["id"] for item in body] == [1, 2]
    assert len(body[0]["result"]["tools"]) == 5
    assert body[1]["result"]["isError"] is False


def test_wrong_content_type_is_415(api) -> None:
    response = api.client.post("/mcp", content=json.dumps(PING), headers={"Content-Type": "text/plain"})
    assert response.status_code == 415


def test_unparseable_body_is_parse_error(api) -> None:
    response = api.client.post("/mcp", content="{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32700


def test_bearer_token_required_when_configured(api) -> None:
    api.mcp_key = "s3cret"

    missing = api.client.post("/mcp", json=PING)
    wrong = api.client.post("/mcp", json=PING, headers={"Authorization": "Bearer nope"})
    right = api.client.post("/mcp", json=PING, headers={"Authorization": "Bearer s3cret"})

    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == -32001
    assert wrong.status_code == 401
    assert right.status_code == 200


def test_delete_ends_session_and_is_idempotent(api) -> None:
    session_id = api.client.post("/mcp", json=PING).headers[SESSION_HEADER]

    assert api.client.delete("/mcp", headers={SESSION_HEADER: session_id}).status_code == 204
    assert api.client.delete("/mcp", headers={SESSION_HEADER: session_id}).status_code == 204
    assert api.client.delete("/mcp").status_code == 204

    after = api.client.post("/mcp", json=PING, headers={SESSION_HEADER: session_id})
    assert after.headers[SESSION_HEADER] != session_id


@pytest.mark.anyio
async def test_keepalive_stream_until_disconnect() -> None:
    checks = iter([False, False, True])

    async def is_disconnected() -> bool:
        return next(checks)

    chunks = [chunk async for chunk in keepalive_comments(is_disconnected, interval=0)]

    assert chunks == [": MCP SSE keepalive\n\n", ": ping\n\n", ": ping\n\n"]


@pytest.fixture
def asgi_client(registry):
    gateway = McpGateway(registry)
    sessions = SessionRegistry()
    app.dependency_overrides.update(
        {
            get_gateway: lambda: gateway,
            get_session_registry: lambda: sessions,
            get_mcp_api_key: lambda: "token",
        }
    )
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    try:
        yield http_client
    finally:
        app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_client_round_trip_against_gateway(asgi_client) -> None:
    client = McpClient("http://testserver/mcp", "token", http_client=asgi_client)

    tools = await client.list_tools()
    found = await client.call_tool("get_product_by_barcode", {"barcode": NUTELLA})
    missing = await client.call_tool("get_product_by_barcode", {"barcode": MISSING})

    assert [tool["name"] for tool in tools][0] == "get_product_by_barcode"
    assert client.session_id
    assert found.is_error is False
    assert json.loads(found.text)["code"] == NUTELLA
    assert missing.is_error is True

    await client.close()
    assert client.session_id is None
    await asgi_client.aclose()


@pytest.mark.anyio
async def test_client_surfaces_protocol_errors(asgi_client) -> None:
    client = McpClient("http://testserver/mcp", "token", http_client=asgi_client)

    with pytest.raises(McpProtocolError) as info:
        await client.call_tool("not_a_tool", {})

    assert info.value.code == INVALID_PARAMS
    await asgi_client.aclose()


@pytest.mark.anyio
async def test_client_rejected_token_is_transport_error(asgi_client) -> None:
    client = McpClient("http://testserver/mcp", "wrong", http_client=asgi_client)

    with pytest.raises(McpTransportError):
        await client.ping()
    await asgi_client.aclose()


@pytest.mark.anyio
async def test_client_unreachable_server_is_transport_error() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = McpClient("http://down.test/mcp", http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)))

    with pytest.raises(McpTransportError, match="unreachable"):
        await client.list_tools()
