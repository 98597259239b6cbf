from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..controller import RemoteController
from ..errors import BrowserFrozenError, InvalidRequestError, RemoteError
from . import playback, session
from .auth import ApiKeyMiddleware

logger = logging.getLogger("channel_remote.server")

CLIENT_ERRORS = (InvalidRequestError, BrowserFrozenError)


def status_for(exc: RemoteError) -> int:
    return 400 if isinstance(exc, CLIENT_ERRORS) else 500


def create_app(controller: RemoteController, *, shutdown_on_exit: bool = False) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Control API ready")
        yield
        if shutdown_on_exit:
            controller.shutdown()

    app = FastAPI(title="channel-remote", version="0.1.0", lifespan=lifespan)
    app.state.controller = controller

    if controller.config.api_key:
        app.add_middleware(ApiKeyMiddleware, api_key=controller.config.api_key)

    @app.exception_handler(RemoteError)
    async def remote_error_handler(request: Request, exc: RemoteError) -> JSONResponse:
        status = status_for(exc)
        log = logger.warning if status < 500 else logger.error
        log("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error in %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "internal_error", "reason": str(exc), "suggestion": "Check the service log"},
        )

    app.include_router(session.router, tags=["session"])
    app.include_router(playback.router, tags=["playback"])
    return app
