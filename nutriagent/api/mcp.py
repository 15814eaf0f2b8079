"""Streamable HTTP binding of the MCP tool gateway at ``/mcp``."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse, StreamingResponse

from nutriagent.api.auth import check_bearer
from nutriagent.mcp.client import SESSION_HEADER
from nutriagent.mcp.gateway import PARSE_ERROR, McpGateway, SessionRegistry, rpc_error
from nutriagent.runtime import get_gateway, get_mcp_api_key, get_session_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mcp"])

KEEPALIVE_INTERVAL = 15.0


async def keepalive_comments(
    is_disconnected: Callable[[], Awaitable[bool]],
    interval: float = KEEPALIVE_INTERVAL,
) -> AsyncIterator[str]:
    """SSE comment stream that only holds the channel open."""
    yield ": MCP SSE keepalive\n\n"
    while not await is_disconnected():
        await asyncio.sleep(interval)
        yield ": ping\n\n"


@router.post("/mcp")
async def mcp_post(
    request: Request,
    gateway: McpGateway = Depends(get_gateway),
    sessions: SessionRegistry = Depends(get_session_registry),
    api_key: Optional[str] = Depends(get_mcp_api_key),
) -> Response:
    denied = check_bearer(request, api_key)
    if denied is not None:
        return denied

    if "application/json" not in request.headers.get("content-type", ""):
        return JSONResponse(
            rpc_error(None, PARSE_ERROR, "Content-Type must be application/json"),
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
        )

    try:
        body = json.loads(await request.body())
    except ValueError:
        return JSONResponse(rpc_error(None, PARSE_ERROR, "Parse error"), status_code=status.HTTP_400_BAD_REQUEST)

    session_id = await sessions.resolve(request.headers.get(SESSION_HEADER))
    result = await gateway.handle(body)
    headers = {SESSION_HEADER: session_id}
    if result is None:
        return Response(status_code=status.HTTP_202_ACCEPTED, headers=headers)
    return JSONResponse(result, headers=headers)


@router.get("/mcp")
async def mcp_stream(
    request: Request,
    sessions: SessionRegistry = Depends(get_session_registry),
    api_key: Optional[str] = Depends(get_mcp_api_key),
) -> Response:
    denied = check_bearer(request, api_key)
    if denied is not None:
        return denied

    session_id = await sessions.resolve(request.headers.get(SESSION_HEADER))
    return StreamingResponse(
        keepalive_comments(request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            SESSION_HEADER: session_id,
        },
    )


@router.delete("/mcp", status_code=status.HTTP_204_NO_CONTENT)
async def mcp_close(
    request: Request,
    sessions: SessionRegistry = Depends(get_session_registry),
    api_key: Optional[str] = Depends(get_mcp_api_key),
) -> Response:
    denied = check_bearer(request, api_key)
    if denied is not None:
        return denied

    session_id = request.headers.get(SESSION_HEADER)
    if session_id:
        await sessions.close(session_id)
        logger.debug("Closed MCP session %s", session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
