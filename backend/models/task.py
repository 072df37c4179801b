from __future__ import annotations

from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.constants import TASK_STATUS_PROCESSING


class SongRequestResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str
    status: Optional[str] = None
    queue_position: Optional[int] = None


class TaskOutcome(BaseModel):
    """One generated track inside a task result.

    The service sends more (prompt, metas, seeds, model names); only the fields
    used downstream are typed here, the rest is kept as extra data.
    """

    model_config = ConfigDict(extra="allow")

    file: Optional[str] = None
    status: Optional[int] = None

    @field_validator("file", mode="before")
    @classmethod
    def coerce_file(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) and value else None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, value: Any) -> Optional[int]:
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value


class TaskResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: str = ""
    result: list[TaskOutcome] = Field(default_factory=list)
    status: int = TASK_STATUS_PROCESSING
    progress_text: Optional[str] = None

    @property
    def first_file(self) -> Optional[str]:
        if not self.result:
            return None
        return self.result[0].file


class TaskClient(Protocol):
    def request_song(self, caption: str, duration: int = ..., **options: Any) -> SongRequestResult: ...

    def query_result(self, task_id_list: list[str]) -> list[TaskResult]: ...

    def get_song_from_url(self, url: str) -> dict[str, str]: ...
