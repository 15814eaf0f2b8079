"""A2A protocol wire models (JSON-RPC binding, protocol version 0.3)."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

A2A_PROTOCOL_VERSION = "0.3"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_id() -> str:
    return str(uuid.uuid4())


class A2AModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class TaskState(str, Enum):
    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input-required"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
    REJECTED = "rejected"
    AUTH_REQUIRED = "auth-required"
    UNKNOWN = "unknown"


class TextPart(A2AModel):
    kind: Literal["text"] = "text"
    text: str


class FileContent(A2AModel):
    uri: Optional[str] = None
    bytes: Optional[str] = None
    mime_type: Optional[str] = None
    name: Optional[str] = None


class FilePart(A2AModel):
    kind: Literal["file"] = "file"
    file: FileContent


class DataPart(A2AModel):
    kind: Literal["data"] = "data"
    data: Dict[str, Any]


Part = Union[TextPart, FilePart, DataPart]


class Message(A2AModel):
    kind: Literal["message"] = "message"
    role: Literal["user", "agent"]
    parts: List[Part]
    message_id: str = Field(default_factory=new_id)
    task_id: Optional[str] = None
    context_id: Optional[str] = None

    def text(self) -> str:
        """Concatenate the text parts, one per line."""
        return "\n".join(part.text for part in self.parts if isinstance(part, TextPart))

    @classmethod
    def agent_text(cls, text: str, **ids: Optional[str]) -> Message:
        return cls(role="agent", parts=[TextPart(text=text)], **ids)


class TaskStatus(A2AModel):
    state: TaskState
    message: Optional[Message] = None
    timestamp: str = Field(default_factory=utc_now)


class Artifact(A2AModel):
    artifact_id: str = Field(default_factory=new_id)
    name: Optional[str] = None
    parts: List[Part]


class Task(A2AModel):
    kind: Literal["task"] = "task"
    id: str = Field(default_factory=new_id)
    context_id: str = Field(default_factory=new_id)
    status: TaskStatus
    artifacts: Optional[List[Artifact]] = None
    history: Optional[List[Message]] = None
    metadata: Optional[Dict[str, Any]] = None


class SendMessageConfiguration(A2AModel):
    accepted_output_modes: Optional[List[str]] = None
    blocking: Optional[bool] = None
    history_length: Optional[int] = None


class SendMessageParams(A2AModel):
    message: Message
    configuration: Optional[SendMessageConfiguration] = None


class GetTaskParams(A2AModel):
    id: str
    history_length: Optional[int] = None


class AgentProvider(A2AModel):
    organization: str
    url: Optional[str] = None


class AgentCapabilities(A2AModel):
    streaming: bool = False
    push_notifications: bool = False
    state_transition_history: bool = False


class SecurityScheme(A2AModel):
    type: str
    scheme: Optional[str] = None
    description: Optional[str] = None


class AgentSkill(A2AModel):
    id: str
    name: str
    description: str
    tags: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)


class AgentCard(A2AModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    description: str
    url: str
    version: str
    protocol_version: str = A2A_PROTOCOL_VERSION
    provider: Optional[AgentProvider] = None
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    security_schemes: Optional[Dict[str, SecurityScheme]] = None
    security: Optional[List[Dict[str, List[str]]]] = None
    default_input_modes: List[str] = Field(default_factory=lambda: ["text/plain"])
    default_output_modes: List[str] = Field(default_factory=lambda: ["text/plain"])
    skills: List[AgentSkill] = Field(default_factory=list)
