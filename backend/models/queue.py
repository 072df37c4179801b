from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from models.schemas import TrackSettings


@dataclass(frozen=True)
class AudioPayload:
    data: bytes
    mime_type: str


@dataclass
class AddedItem:
    id: str
    settings: TrackSettings
    kind: Literal["added"] = field(default="added", init=False)


@dataclass
class PendingItem:
    id: str
    settings: TrackSettings
    task_id: Optional[str] = None
    progress: Optional[str] = None
    kind: Literal["pending"] = field(default="pending", init=False)


@dataclass
class CompletedItem:
    id: str
    caption: str
    duration: int
    audio: AudioPayload
    bpm: Optional[int] = None
    key: Optional[str] = None
    genre: Optional[str] = None
    kind: Literal["completed"] = field(default="completed", init=False)


@dataclass
class FailedItem:
    id: str
    settings: TrackSettings
    error: str
    progress: Optional[str] = None
    kind: Literal["failed"] = field(default="failed", init=False)


QueueItem = Union[AddedItem, PendingItem, CompletedItem, FailedItem]


def item_to_dict(item: QueueItem) -> dict[str, object]:
    if isinstance(item, CompletedItem):
        return {
            "id": item.id,
            "kind": item.kind,
            "caption": item.caption,
            "duration": item.duration,
            "bpm": item.bpm,
            "key": item.key,
            "genre": item.genre,
            "mime_type": item.audio.mime_type,
            "size_bytes": len(item.audio.data),
        }

    payload: dict[str, object] = {
        "id": item.id,
        "kind": item.kind,
        "caption": item.settings.caption,
        "duration": item.settings.duration,
        "bpm": item.settings.bpm,
        "key": item.settings.key,
        "genre": item.settings.genre,
    }
    if isinstance(item, PendingItem):
        payload["task_id"] = item.task_id
        payload["progress"] = item.progress
    elif isinstance(item, FailedItem):
        payload["progress"] = item.progress
        payload["error"] = item.error
    return payload
