"""Exception hierarchy shared by the gateway, tools and task layers."""
from __future__ import annotations


class NutriAgentError(Exception):
    """Base class for all service errors."""


class DataSourceError(NutriAgentError):
    """Upstream catalog request failed."""


class ProductNotFoundError(DataSourceError):
    """The catalog has no product for the requested barcode."""

    def __init__(self, barcode: str) -> None:
        super().__init__(f"Product not found for barcode {barcode}")
        self.barcode = barcode


class UnknownToolError(NutriAgentError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolArgumentError(NutriAgentError):
    """Required tool arguments are missing."""


class McpError(NutriAgentError):
    """Base class for MCP client failures."""


class McpTransportError(McpError):
    """The gateway could not be reached or answered with an HTTP error."""


class McpProtocolError(McpError):
    """The gateway answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"MCP error {code}: {message}")
        self.code = code
        self.rpc_message = message


class TaskNotFoundError(NutriAgentError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidTransitionError(NutriAgentError):
    """A task state change is not allowed from its current state."""
