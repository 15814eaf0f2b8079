"""Interactive channel: WebSocket chat plus its plain HTTP twin."""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from nutriagent.core.models import BusMessage
from nutriagent.orchestration.orchestrator import Orchestrator
from nutriagent.orchestration.prompts import WELCOME_MESSAGE
from nutriagent.runtime import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents/nutri-agent", tags=["chat"])

CHAT_TIMEOUT = 120.0
FINAL_TYPES = {"response", "error"}


class ChatRequest(BaseModel):
    message: str = Field(..., description="User message to send to the agent")


class ChatResponse(BaseModel):
    response: Optional[str] = None
    error: Optional[str] = None


def parse_inbound(raw: str) -> Optional[Dict[str, Any]]:
    """Interpret an inbound frame as a chat payload.

    JSON objects must carry ``type == "chat"`` and a non-empty ``content``;
    a JSON string is taken as its decoded text, and anything else that is
    not a JSON object as raw chat text.
    """
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, str):
        text = parsed.strip()
        return {"type": "chat", "content": text} if text else None
    if not isinstance(parsed, dict):
        text = raw.strip()
        return {"type": "chat", "content": text} if text else None
    if parsed.get("type") == "chat" and parsed.get("content"):
        return {"type": "chat", "content": str(parsed["content"])}
    return None


async def _forward(inbox: asyncio.Queue[BusMessage], websocket: WebSocket) -> None:
    while True:
        message = await inbox.get()
        await websocket.send_json(message.payload)


@router.websocket("/{name}")
async def chat_socket(
    websocket: WebSocket,
    name: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> None:
    await websocket.accept()
    client_id = f"ws-client-{uuid.uuid4()}"
    await websocket.send_json({"type": "welcome", "message": WELCOME_MESSAGE})

    async with orchestrator.bus.deliver(client_id) as inbox:
        forwarder = asyncio.create_task(_forward(inbox, websocket))
        try:
            while True:
                payload = parse_inbound(await websocket.receive_text())
                if payload is None:
                    continue
                descriptor = await orchestrator.conversation_agent(name)
                await orchestrator.dispatch(
                    sender_id=client_id,
                    recipient_id=descriptor.agent_id,
                    payload=payload,
                    correlation_id=str(uuid.uuid4()),
                )
        except WebSocketDisconnect:
            logger.debug("Client %s left conversation %s", client_id, name)
        finally:
            forwarder.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await forwarder


@router.post("/{name}/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(
    name: str,
    request: ChatRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """Send one message to a conversation and wait for its answer."""
    descriptor = await orchestrator.conversation_agent(name)
    client_id = f"chat-client-{uuid.uuid4()}"

    async with orchestrator.bus.deliver(client_id) as inbox:
        await orchestrator.dispatch(
            sender_id=client_id,
            recipient_id=descriptor.agent_id,
            payload={"type": "chat", "content": request.message},
            correlation_id=str(uuid.uuid4()),
        )
        try:
            reply = await asyncio.wait_for(_final_reply(inbox), timeout=CHAT_TIMEOUT)
        except asyncio.TimeoutError:
            return ChatResponse(error="Request timed out. The agent may be busy.")

    if reply.get("type") == "error":
        return ChatResponse(error=reply.get("message"))
    return ChatResponse(response=reply.get("content", ""))


async def _final_reply(inbox: asyncio.Queue[BusMessage]) -> Dict[str, Any]:
    # Progress envelopes are advisory; only the final answer matters here.
    while True:
        message = await inbox.get()
        if message.payload.get("type") in FINAL_TYPES:
            return message.payload
