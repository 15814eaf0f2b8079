"""Async JSON-RPC client for the MCP Streamable HTTP gateway."""
from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from nutriagent.core.errors import McpProtocolError, McpTransportError
from nutriagent.core.models import ToolOutcome
from nutriagent.mcp.gateway import MCP_PROTOCOL_VERSION

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"
CLIENT_INFO = {"name": "NutriAgent", "version": "1.2.0"}


class McpClient:
    """Client side of the tool gateway.

    The session id handed out by the server is captured from the first
    response and echoed on every following request.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self._api_key = api_key
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)
        self.session_id: Optional[str] = None
        self._initialized = False

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        if self.session_id:
            headers[SESSION_HEADER] = self.session_id
        return headers

    async def _rpc(self, method: str, params: Optional[Dict[str, Any]] = None, *, notify: bool = False) -> Any:
        body: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if not notify:
            body["id"] = next(self._ids)
        if params is not None:
            body["params"] = params

        try:
            response = await self._http.post(self.url, json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            raise McpTransportError(f"MCP server unreachable: {exc}") from exc

        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self.session_id = session_id

        if response.status_code == 202:
            return None
        if response.is_error:
            raise McpTransportError(f"MCP server {response.status_code}: {response.text}")

        try:
            data = response.json()
        except ValueError as exc:
            raise McpTransportError("MCP server returned a non-JSON body") from exc
        error = data.get("error")
        if error:
            raise McpProtocolError(int(error.get("code", 0)), str(error.get("message", "")))
        return data.get("result")

    async def initialize(self) -> None:
        """Perform the handshake (initialize + notifications/initialized) once."""
        if self._initialized:
            return
        await self._rpc(
            "initialize",
            {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "clientInfo": CLIENT_INFO,
                "capabilities": {},
            },
        )
        await self._rpc("notifications/initialized", notify=True)
        self._initialized = True

    async def ping(self) -> None:
        await self.initialize()
        await self._rpc("ping")

    async def list_tools(self) -> List[Dict[str, Any]]:
        await self.initialize()
        result = await self._rpc("tools/list")
        return list((result or {}).get("tools", []))

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolOutcome:
        await self.initialize()
        result = await self._rpc("tools/call", {"name": name, "arguments": arguments})
        result = result or {}
        text = "\n".join(
            str(part.get("text", ""))
            for part in result.get("content", [])
            if isinstance(part, dict) and part.get("type") == "text"
        )
        return ToolOutcome(text=text, is_error=bool(result.get("isError")))

    async def close(self) -> None:
        """Drop the remote session and release the HTTP client."""
        if self.session_id:
            try:
                await self._http.delete(self.url, headers=self._headers())
            except httpx.HTTPError as exc:
                logger.debug("Ignoring session close failure: %s", exc)
            self.session_id = None
        self._initialized = False
        if self._owns_client:
            await self._http.aclose()
