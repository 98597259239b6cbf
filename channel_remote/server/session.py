from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from ..controller import RemoteController

router = APIRouter()


def _controller(request: Request) -> RemoteController:
    return request.app.state.controller


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    return _controller(request).health()


@router.get("/page-health")
def page_health(request: Request) -> dict[str, Any]:
    return _controller(request).page_health()


@router.post("/restart-session")
def restart_session(request: Request) -> dict[str, Any]:
    return _controller(request).restart_session()


@router.get("/debug")
def debug(request: Request) -> dict[str, Any]:
    return _controller(request).debug()


@router.post("/video-login")
def video_login(request: Request) -> dict[str, Any]:
    return _controller(request).open_login()


@router.get("/video-status")
def video_status(request: Request) -> dict[str, Any]:
    return _controller(request).login_status()
