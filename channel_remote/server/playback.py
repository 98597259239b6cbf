from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..controller import RemoteController
from .models import CaptionsRequest, ChangeTargetRequest, NavigateVideoRequest

router = APIRouter()


def _controller(request: Request) -> RemoteController:
    return request.app.state.controller


@router.post("/change-target")
def change_target(body: ChangeTargetRequest, request: Request) -> dict[str, Any]:
    return _controller(request).change_target(body.url, body.target_id)


@router.post("/navigate-video")
def navigate_video(body: NavigateVideoRequest, request: Request) -> dict[str, Any]:
    """Acknowledge immediately; the navigation runs as a background job."""
    job = _controller(request).submit_video(body.url)
    return {"success": True, "message": "Navigation started", "jobId": job.id}


@router.get("/jobs/{job_id}")
def job_status(job_id: str, request: Request):
    job = _controller(request).job(job_id)
    if job is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "not_found", "reason": f"Unknown job {job_id}"})
    return job.to_dict()


@router.post("/captions")
def captions(body: CaptionsRequest, request: Request) -> dict[str, Any]:
    return _controller(request).captions_action(body.action)


@router.get("/current")
def current(request: Request) -> dict[str, Any]:
    return _controller(request).current()


@router.get("/video-info")
def video_info(request: Request):
    info = _controller(request).current_video_info()
    if info is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "not_found", "reason": "No video is playing"})
    return info
