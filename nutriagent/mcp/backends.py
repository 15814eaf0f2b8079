"""Interchangeable tool backends used by the orchestration loop.

``RemoteToolBackend`` goes through the MCP gateway, ``LocalToolBackend``
calls the registry in process. ``FailoverToolBackend`` chooses between them
with a health probe so callers never see which one served a request.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Protocol

from nutriagent.core.errors import McpError, McpProtocolError, McpTransportError, UnknownToolError
from nutriagent.core.models import ToolOutcome
from nutriagent.mcp.client import McpClient
from nutriagent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolBackend(Protocol):
    name: str

    async def list_tools(self) -> List[Dict[str, Any]]: ...

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolOutcome: ...

    async def probe(self) -> bool: ...


class LocalToolBackend:
    """Runs tools directly against the in-process registry."""

    name = "local"

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    async def list_tools(self) -> List[Dict[str, Any]]:
        return self._registry.catalog()

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolOutcome:
        try:
            return await self._registry.execute(name, arguments)
        except UnknownToolError as exc:
            return ToolOutcome(text=f"Error: {exc}", is_error=True)

    async def probe(self) -> bool:
        return True


class RemoteToolBackend:
    """Calls tools through the MCP gateway.

    JSON-RPC errors (for instance an unknown tool name) come back as error
    outcomes; transport failures propagate as :class:`McpTransportError`.
    """

    name = "mcp"

    def __init__(self, client: McpClient) -> None:
        self._client = client

    async def list_tools(self) -> List[Dict[str, Any]]:
        return await self._client.list_tools()

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolOutcome:
        try:
            return await self._client.call_tool(name, arguments)
        except McpProtocolError as exc:
            return ToolOutcome(text=f"Error: {exc.rpc_message}", is_error=True)

    async def probe(self) -> bool:
        try:
            await self._client.ping()
        except McpError as exc:
            logger.info("MCP gateway at %s unavailable: %s", self._client.url, exc)
            return False
        return True

    async def close(self) -> None:
        await self._client.close()


class FailoverToolBackend:
    """Serve from ``primary`` while it is healthy, otherwise from ``fallback``."""

    def __init__(
        self,
        primary: ToolBackend,
        fallback: ToolBackend,
        *,
        reprobe_after: float = 30.0,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._reprobe_after = reprobe_after
        self._healthy: Optional[bool] = None
        self._checked_at = 0.0

    @property
    def name(self) -> str:
        return f"{self._primary.name}|{self._fallback.name}"

    async def active(self) -> ToolBackend:
        """Return the backend that should serve the next call."""
        stale = time.monotonic() - self._checked_at >= self._reprobe_after
        if self._healthy is None or (not self._healthy and stale):
            self._healthy = await self._primary.probe()
            self._checked_at = time.monotonic()
            if not self._healthy:
                logger.info("Using %s tool backend", self._fallback.name)
        return self._primary if self._healthy else self._fallback

    def _mark_down(self, exc: Exception) -> None:
        logger.warning("Tool backend %s failed, switching to %s: %s", self._primary.name, self._fallback.name, exc)
        self._healthy = False
        self._checked_at = time.monotonic()

    async def list_tools(self) -> List[Dict[str, Any]]:
        backend = await self.active()
        if backend is self._fallback:
            return await self._fallback.list_tools()
        try:
            return await backend.list_tools()
        except McpTransportError as exc:
            self._mark_down(exc)
            return await self._fallback.list_tools()

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolOutcome:
        backend = await self.active()
        if backend is self._fallback:
            return await self._fallback.call_tool(name, arguments)
        try:
            return await backend.call_tool(name, arguments)
        except McpTransportError as exc:
            self._mark_down(exc)
            return await self._fallback.call_tool(name, arguments)

    async def probe(self) -> bool:
        return await self._primary.probe() or await self._fallback.probe()
