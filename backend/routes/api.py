from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from models.constants import INVALID_PAYLOAD_ERROR
from models.errors import NothingPlayingError
from models.queue import item_to_dict
from models.schemas import AutoAdderUpdateBody, SettingsUpdateBody
from services.queue_controller import QueueController

router = APIRouter()


class PlaybackErrorBody(BaseModel):
    reason: Optional[str] = None


def get_controller(request: Request) -> QueueController:
    return request.app.state.queue_controller


@router.get("/api/settings")
def get_settings(request: Request) -> dict[str, Any]:
    return get_controller(request).settings.model_dump()


@router.put("/api/settings")
def update_settings(body: SettingsUpdateBody, request: Request) -> dict[str, Any]:
    try:
        settings = get_controller(request).update_settings(**body.model_dump(exclude_unset=True))
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=INVALID_PAYLOAD_ERROR) from exc
    return settings.model_dump()


@router.get("/api/queue")
def get_queue(request: Request) -> dict[str, Any]:
    return get_controller(request).queue_snapshot()


@router.post("/api/queue", status_code=201)
def add_song(request: Request) -> dict[str, object]:
    return item_to_dict(get_controller(request).add_song())


@router.delete("/api/queue", status_code=204)
def clear_queue(request: Request) -> Response:
    get_controller(request).clear_all()
    return Response(status_code=204)


@router.delete("/api/queue/{item_id}", status_code=204)
def remove_item(item_id: str, request: Request) -> Response:
    get_controller(request).remove_item(item_id)
    return Response(status_code=204)


@router.post("/api/queue/skip")
def skip(request: Request) -> dict[str, Optional[str]]:
    skipped = get_controller(request).skip()
    return {"skipped": skipped.id if skipped else None}


@router.post("/api/queue/clear-completed")
def clear_completed(request: Request) -> dict[str, int]:
    return {"removed": get_controller(request).clear_completed()}


@router.post("/api/queue/clear-failed")
def clear_failed(request: Request) -> dict[str, int]:
    return {"removed": get_controller(request).clear_failed()}


@router.get("/api/auto-adder")
def get_auto_adder(request: Request) -> dict[str, Any]:
    return get_controller(request).auto_adder_status()


@router.put("/api/auto-adder")
def update_auto_adder(body: AutoAdderUpdateBody, request: Request) -> dict[str, Any]:
    return get_controller(request).configure_auto_adder(
        enabled=body.enabled, target_size=body.target_size
    )


@router.get("/api/now-playing")
def get_now_playing(request: Request) -> dict[str, Any]:
    try:
        session = get_controller(request).now_playing()
    except NothingPlayingError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "id": session.item_id,
        "caption": session.caption,
        "mime_type": session.mime_type,
        "size_bytes": len(session.audio),
    }


@router.get("/api/now-playing/audio")
def get_now_playing_audio(request: Request) -> Response:
    try:
        session = get_controller(request).now_playing()
    except NothingPlayingError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(content=session.audio, media_type=session.mime_type)


@router.post("/api/now-playing/{item_id}/ended", status_code=204)
def report_playback_ended(item_id: str, request: Request) -> Response:
    try:
        get_controller(request).report_playback_ended(item_id)
    except NothingPlayingError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return Response(status_code=204)


@router.post("/api/now-playing/{item_id}/error", status_code=204)
def report_playback_error(item_id: str, request: Request, body: Optional[PlaybackErrorBody] = None) -> Response:
    try:
        get_controller(request).report_playback_error(item_id, body.reason if body else None)
    except NothingPlayingError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return Response(status_code=204)


async def handle_validation_error(_request: Any, _exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": INVALID_PAYLOAD_ERROR})


async def handle_http_exception(_request: Any, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"error": detail})
