from __future__ import annotations

import hmac
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("channel_remote.server.auth")

OPEN_PATHS = frozenset({"/health"})


def presented_key(request: Request) -> str | None:
    key = request.headers.get("x-api-key")
    if key:
        return key.strip()
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Require the configured key on every route except the open ones."""

    def __init__(self, app, api_key: str) -> None:
        super().__init__(app)
        self.api_key = api_key

    async def dispatch(self, request: Request, call_next):
        if request.url.path in OPEN_PATHS:
            return await call_next(request)
        key = presented_key(request)
        if key is None or not hmac.compare_digest(key.encode(), self.api_key.encode()):
            logger.warning("Rejected %s %s: missing or invalid API key", request.method, request.url.path)
            return JSONResponse(
                status_code=401,
                content={"success": False, "error": "unauthorized", "reason": "Missing or invalid API key"},
            )
        return await call_next(request)
