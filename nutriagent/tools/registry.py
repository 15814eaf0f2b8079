"""Fixed catalog of named tools with schemas and async executors."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, TypeVar

from nutriagent.core.errors import ToolArgumentError, UnknownToolError
from nutriagent.core.models import ToolOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

Executor = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A named, schema-described callable wrapping one data lookup."""

    name: str
    description: str
    input_schema: Mapping[str, Any]
    executor: Executor

    @property
    def required(self) -> List[str]:
        return list(self.input_schema.get("required", []))

    def to_mcp(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": dict(self.input_schema),
        }

    def to_openai(self) -> Dict[str, Any]:
        return mcp_to_openai(self.to_mcp())


def mcp_to_openai(tool: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert an MCP tool listing entry into the function-calling shape."""
    return {
        "type": "function",
        "function": {
            "name": tool["name"],
            "description": tool.get("description", ""),
            "parameters": tool.get("inputSchema") or {"type": "object", "properties": {}},
        },
    }


async def tolerant_gather(*awaitables: Awaitable[T]) -> List[T]:
    """Await everything concurrently and keep only the successful results.

    Results keep the order of the inputs. Failures are dropped, so a caller
    gets best-effort aggregation instead of all-or-nothing.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    kept: List[T] = []
    for result in results:
        if isinstance(result, Exception):
            logger.debug("Dropping failed sub-result: %s", result)
            continue
        if isinstance(result, BaseException):
            raise result
        kept.append(result)
    return kept


class ToolRegistry:
    """Immutable name -> tool mapping built once at startup."""

    def __init__(self, tools: Iterable[ToolDefinition]) -> None:
        catalog: Dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in catalog:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            catalog[tool.name] = tool
        self._tools = catalog

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDefinition:
        if name not in self._tools:
            raise UnknownToolError(name)
        return self._tools[name]

    def catalog(self) -> List[Dict[str, Any]]:
        """Tool listing in MCP shape, in registration order."""
        return [tool.to_mcp() for tool in self._tools.values()]

    def openai_tools(self) -> List[Dict[str, Any]]:
        return [tool.to_openai() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: Dict[str, Any]) -> ToolOutcome:
        """Run a tool and fold any executor failure into an error outcome.

        Raises:
            UnknownToolError: ``name`` is not registered; nothing is executed.
        """
        tool = self.get(name)
        try:
            missing = [key for key in tool.required if arguments.get(key) in (None, "")]
            if missing:
                raise ToolArgumentError(f"Missing required argument(s): {', '.join(missing)}")
            result = await tool.executor(arguments)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool %s failed: %s", name, exc)
            return ToolOutcome(text=f"Error: {exc}", is_error=True)
        return ToolOutcome(text=json.dumps(result, indent=2, ensure_ascii=False), is_error=False)
