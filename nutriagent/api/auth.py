"""Bearer-token gates for the protocol endpoints."""
from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from nutriagent.mcp.gateway import UNAUTHORIZED, rpc_error


def check_bearer(request: Request, expected: Optional[str]) -> Optional[JSONResponse]:
    """Return a 401 response when the request lacks the expected token.

    An unset ``expected`` disables the check.
    """
    if not expected:
        return None

    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return _unauthorized("Unauthorized: Bearer token required")
    if not hmac.compare_digest(header[len("Bearer "):].encode(), expected.encode()):
        return _unauthorized("Unauthorized: invalid token")
    return None


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(rpc_error(None, UNAUTHORIZED, message), status_code=401)
