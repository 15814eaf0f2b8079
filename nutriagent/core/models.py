"""Core data models shared across agent, tool and gateway components."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional


class AgentState(Enum):
    """Lifecycle states for a conversation agent managed by the orchestrator."""

    SPAWNING = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()
    FAILED = auto()


@dataclass(slots=True)
class AgentDescriptor:
    """Descriptor kept by the orchestrator for each conversation agent."""

    agent_id: str
    conversation: str
    state: AgentState = AgentState.SPAWNING
    task_count: int = 0
    last_error: Optional[str] = None


@dataclass(slots=True)
class BusMessage:
    """Envelope exchanged between channel clients and agents over the bus."""

    sender_id: str
    recipient_id: str
    payload: Dict[str, Any]
    correlation_id: Optional[str] = None


@dataclass(slots=True)
class Session:
    """Gateway session handle."""

    session_id: str
    created_at: float


@dataclass(slots=True)
class ToolOutcome:
    """Normalized result of one tool invocation."""

    text: str
    is_error: bool = False


@dataclass(slots=True)
class ToolCall:
    """A tool invocation requested by the language model."""

    id: str
    name: str
    arguments: str = "{}"

    def to_openai(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(slots=True)
class ChatTurn:
    """One turn of conversation state in chat-completions order."""

    role: str
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_openai(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_openai() for call in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


@dataclass(slots=True)
class AssistantReply:
    """Backend response after field normalization."""

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)

    def as_turn(self) -> ChatTurn:
        return ChatTurn(role="assistant", content=self.content, tool_calls=list(self.tool_calls))
