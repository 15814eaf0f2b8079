"""Task records and their state machine."""
from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional

from nutriagent.a2a.types import Artifact, Message, Task, TaskState, TaskStatus, TextPart, new_id
from nutriagent.core.errors import InvalidTransitionError, TaskNotFoundError
from nutriagent.core.store import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[TaskState, FrozenSet[TaskState]] = {
    TaskState.SUBMITTED: frozenset(
        {TaskState.WORKING, TaskState.REJECTED, TaskState.CANCELED, TaskState.FAILED}
    ),
    TaskState.WORKING: frozenset(
        {
            TaskState.COMPLETED,
            TaskState.FAILED,
            TaskState.INPUT_REQUIRED,
            TaskState.CANCELED,
            TaskState.AUTH_REQUIRED,
        }
    ),
}

TERMINAL_STATES = frozenset(
    {
        TaskState.COMPLETED,
        TaskState.FAILED,
        TaskState.INPUT_REQUIRED,
        TaskState.CANCELED,
        TaskState.REJECTED,
        TaskState.AUTH_REQUIRED,
    }
)


def can_transition(current: TaskState, target: TaskState) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


class TaskManager:
    """Creates tasks and moves them through their lifecycle.

    Records live in the injected store, so they vanish with the process
    unless a durable store is supplied.
    """

    def __init__(self, store: Optional[KeyValueStore[Task]] = None) -> None:
        self._store: KeyValueStore[Task] = store if store is not None else InMemoryStore()

    async def create(self, context_id: Optional[str] = None, message: Optional[Message] = None) -> Task:
        """Register a task that is already being worked on."""
        task = Task(
            context_id=context_id or new_id(),
            status=TaskStatus(state=TaskState.WORKING),
        )
        if message is not None:
            task.history = [message.model_copy(update={"task_id": task.id, "context_id": task.context_id})]
        await self._store.put(task.id, task)
        logger.info("Task %s created in context %s", task.id, task.context_id)
        return task

    async def get(self, task_id: str, history_length: Optional[int] = None) -> Task:
        task = await self._store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if history_length is None or task.history is None:
            return task
        trimmed = task.history[-history_length:] if history_length > 0 else []
        return task.model_copy(update={"history": trimmed})

    async def complete(self, task_id: str, text: str) -> Task:
        artifact = Artifact(name="response", parts=[TextPart(text=text)])
        return await self._transition(task_id, TaskState.COMPLETED, reply=text, artifacts=[artifact])

    async def fail(self, task_id: str, text: str) -> Task:
        return await self._transition(task_id, TaskState.FAILED, status_text=text)

    async def require_input(self, task_id: str, text: str, partial: str = "") -> Task:
        artifacts = [Artifact(name="partial-response", parts=[TextPart(text=partial)])] if partial else None
        return await self._transition(
            task_id,
            TaskState.INPUT_REQUIRED,
            status_text=text,
            reply=partial or None,
            artifacts=artifacts,
        )

    async def _transition(
        self,
        task_id: str,
        target: TaskState,
        *,
        status_text: Optional[str] = None,
        reply: Optional[str] = None,
        artifacts: Optional[list] = None,
    ) -> Task:
        task = await self._store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        current = task.status.state
        if not can_transition(current, target):
            raise InvalidTransitionError(f"Task {task_id} cannot move from {current.value} to {target.value}")

        ids = {"task_id": task.id, "context_id": task.context_id}
        status_message = Message.agent_text(status_text, **ids) if status_text else None
        history = list(task.history or [])
        if reply:
            history.append(Message.agent_text(reply, **ids))

        updated = task.model_copy(
            update={
                "status": TaskStatus(state=target, message=status_message),
                "artifacts": artifacts if artifacts is not None else task.artifacts,
                "history": history or None,
            }
        )
        await self._store.put(task_id, updated)
        logger.info("Task %s %s -> %s", task_id, current.value, target.value)
        return updated
