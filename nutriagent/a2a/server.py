"""A2A JSON-RPC method handling: SendMessage and GetTask."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Union

from pydantic import ValidationError

from nutriagent.a2a.tasks import TaskManager
from nutriagent.a2a.types import GetTaskParams, SendMessageParams, Task
from nutriagent.core.errors import TaskNotFoundError
from nutriagent.mcp.gateway import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, rpc_error, rpc_ok
from nutriagent.orchestration.prompts import ITERATION_LIMIT_MESSAGE
from nutriagent.orchestration.tool_loop import ToolUseLoop

logger = logging.getLogger(__name__)

SERVER_ERROR = -32000
TASK_NOT_FOUND = -32001

METHOD_ALIASES = {
    "message/send": "SendMessage",
    "tasks/get": "GetTask",
}


class A2AService:
    """Runs agent tasks on behalf of A2A clients.

    Every ``SendMessage`` starts a fresh conversation, runs the tool-use
    loop to completion and records the outcome on the task before replying.
    """

    def __init__(self, tasks: TaskManager, loop_factory: Callable[[], ToolUseLoop]) -> None:
        self._tasks = tasks
        self._loop_factory = loop_factory

    async def handle(self, body: Any) -> Dict[str, Any]:
        """Dispatch one decoded JSON-RPC request; always returns a response object."""
        if not isinstance(body, dict) or body.get("jsonrpc") != "2.0" or not body.get("method"):
            request_id = body.get("id") if isinstance(body, dict) else None
            return rpc_error(request_id, INVALID_REQUEST, "Invalid JSON-RPC request")

        request_id = body.get("id")
        method = METHOD_ALIASES.get(body["method"], body["method"])
        params = body.get("params") or {}

        try:
            if method == "SendMessage":
                result: Union[Dict[str, Any], Task] = await self.send_message(SendMessageParams.model_validate(params))
            elif method == "GetTask":
                result = await self.get_task(GetTaskParams.model_validate(params))
            else:
                return rpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {body['method']}")
        except ValidationError as exc:
            details = exc.errors(include_url=False, include_context=False, include_input=False)
            return rpc_error(request_id, INVALID_PARAMS, f"Invalid params: {exc.error_count()} error(s)", details)
        except TaskNotFoundError as exc:
            return rpc_error(request_id, TASK_NOT_FOUND, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("A2A method %s failed", method)
            return rpc_error(request_id, SERVER_ERROR, str(exc))

        if isinstance(result, Task):
            result = result.to_wire()
        return rpc_ok(request_id, result)

    async def send_message(self, params: SendMessageParams) -> Dict[str, Any]:
        utterance = params.message.text()
        if not utterance.strip():
            raise ValueError("Message must contain at least one text part")

        task = await self._tasks.create(params.message.context_id, params.message)
        try:
            result = await self._loop_factory().respond([], utterance)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Task %s failed: %s", task.id, exc)
            task = await self._tasks.fail(task.id, f"Error: {exc}")
        else:
            if result.exhausted:
                task = await self._tasks.require_input(task.id, ITERATION_LIMIT_MESSAGE, partial=result.content)
            else:
                task = await self._tasks.complete(task.id, result.content)
        return {"task": task.to_wire()}

    async def get_task(self, params: GetTaskParams) -> Task:
        return await self._tasks.get(params.id, params.history_length)
