"""A2A protocol endpoints: agent card discovery and the JSON-RPC task API."""
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from nutriagent.a2a.server import A2AService
from nutriagent.a2a.types import AgentCard
from nutriagent.api.auth import check_bearer
from nutriagent.mcp.gateway import INVALID_REQUEST, PARSE_ERROR, rpc_error
from nutriagent.runtime import get_a2a_api_key, get_a2a_service, get_agent_card

router = APIRouter(tags=["a2a"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, Accept",
}


@router.get("/.well-known/agent-card.json")
async def agent_card(card: AgentCard = Depends(get_agent_card)) -> JSONResponse:
    """Public discovery document; no authentication."""
    return JSONResponse(
        card.to_wire(),
        headers={
            "Cache-Control": "public, max-age=3600",
            "Access-Control-Allow-Origin": "*",
        },
    )


@router.options("/a2a")
async def a2a_preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)


@router.post("/a2a")
async def a2a_rpc(
    request: Request,
    service: A2AService = Depends(get_a2a_service),
    api_key: Optional[str] = Depends(get_a2a_api_key),
) -> Response:
    denied = check_bearer(request, api_key)
    if denied is not None:
        return denied

    try:
        body = json.loads(await request.body())
    except ValueError:
        return JSONResponse(rpc_error(None, PARSE_ERROR, "Parse error"), status_code=status.HTTP_400_BAD_REQUEST)

    response = await service.handle(body)
    error = response.get("error")
    if error and error["code"] == INVALID_REQUEST:
        return JSONResponse(response, status_code=status.HTTP_400_BAD_REQUEST)
    return JSONResponse(response)
