"""JSON-RPC 2.0 dispatcher exposing the tool registry over MCP.

The gateway is transport agnostic: :meth:`McpGateway.handle` takes an
already-decoded request body and returns what should be written back,
``None`` meaning "accepted, no content". The HTTP binding lives in
``nutriagent.api.mcp``.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from nutriagent.core.errors import UnknownToolError
from nutriagent.core.models import Session
from nutriagent.core.store import InMemoryStore, KeyValueStore
from nutriagent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2025-03-26"
SERVER_INFO = {"name": "NutriAgent-MCP", "version": "1.2.0"}
SERVER_CAPABILITIES = {"tools": {"listChanged": False}}

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
UNAUTHORIZED = -32001

JsonRpcId = Union[str, int, None]
RpcResponse = Dict[str, Any]


def rpc_ok(request_id: JsonRpcId, result: Any) -> RpcResponse:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def rpc_error(request_id: JsonRpcId, code: int, message: str, data: Any = None) -> RpcResponse:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


class SessionRegistry:
    """Issues and tracks gateway sessions on top of a key/value store."""

    def __init__(self, store: Optional[KeyValueStore[Session]] = None) -> None:
        self._store: KeyValueStore[Session] = store if store is not None else InMemoryStore()

    async def resolve(self, session_id: Optional[str]) -> str:
        """Return ``session_id`` when known, otherwise mint a fresh session."""
        if session_id and await self._store.get(session_id) is not None:
            return session_id
        session = Session(session_id=uuid.uuid4().hex, created_at=time.time())
        await self._store.put(session.session_id, session)
        logger.debug("Opened MCP session %s", session.session_id)
        return session.session_id

    async def get(self, session_id: str) -> Optional[Session]:
        return await self._store.get(session_id)

    async def close(self, session_id: str) -> None:
        await self._store.delete(session_id)


class McpGateway:
    """Dispatch JSON-RPC envelopes to MCP methods backed by a tool registry."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry
        self._methods: Dict[str, Callable[[JsonRpcId, Dict[str, Any]], Awaitable[RpcResponse]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
        }

    async def handle(self, body: Any) -> Union[RpcResponse, List[RpcResponse], None]:
        """Process a single envelope or a batch.

        Returns a response object, a list of responses for a batch, or
        ``None`` when nothing but notifications were received.
        """
        if isinstance(body, list):
            if not body:
                return rpc_error(None, INVALID_REQUEST, "Invalid Request: empty batch")
            results = await asyncio.gather(*(self.handle_one(item) for item in body))
            responses = [result for result in results if result is not None]
            return responses or None
        return await self.handle_one(body)

    async def handle_one(self, envelope: Any) -> Optional[RpcResponse]:
        if not isinstance(envelope, dict):
            return rpc_error(None, INVALID_REQUEST, "Invalid Request")

        is_notification = "id" not in envelope
        request_id = envelope.get("id")
        method = envelope.get("method")
        if envelope.get("jsonrpc") != "2.0" or not isinstance(method, str) or not method:
            if is_notification:
                return None
            return rpc_error(request_id, INVALID_REQUEST, "Invalid Request")

        params = envelope.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            response = rpc_error(request_id, INVALID_PARAMS, "params must be an object")
            return None if is_notification else response

        if method.startswith("notifications/"):
            logger.debug("Notification %s", method)
            return None

        handler = self._methods.get(method)
        if handler is None:
            response = rpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        else:
            try:
                response = await handler(request_id, params)
            except Exception as exc:  # noqa: BLE001
                logger.exception("MCP method %s failed", method)
                response = rpc_error(request_id, INTERNAL_ERROR, f"Internal error: {exc}")
        return None if is_notification else response

    async def _initialize(self, request_id: JsonRpcId, params: Dict[str, Any]) -> RpcResponse:
        client = params.get("clientInfo") or {}
        logger.info(
            "MCP initialize from %s (protocol %s)",
            client.get("name", "unknown"),
            params.get("protocolVersion", "unspecified"),
        )
        return rpc_ok(
            request_id,
            {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "serverInfo": SERVER_INFO,
                "capabilities": SERVER_CAPABILITIES,
            },
        )

    async def _ping(self, request_id: JsonRpcId, params: Dict[str, Any]) -> RpcResponse:
        return rpc_ok(request_id, {})

    async def _tools_list(self, request_id: JsonRpcId, params: Dict[str, Any]) -> RpcResponse:
        return rpc_ok(request_id, {"tools": self._registry.catalog()})

    async def _tools_call(self, request_id: JsonRpcId, params: Dict[str, Any]) -> RpcResponse:
        name = params.get("name")
        if not name or not isinstance(name, str):
            return rpc_error(request_id, INVALID_PARAMS, "Missing required parameter: name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return rpc_error(request_id, INVALID_PARAMS, "arguments must be an object")

        try:
            outcome = await self._registry.execute(name, arguments)
        except UnknownToolError as exc:
            return rpc_error(request_id, INVALID_PARAMS, str(exc))

        return rpc_ok(
            request_id,
            {
                "content": [{"type": "text", "text": outcome.text}],
                "isError": outcome.is_error,
            },
        )
