from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, Optional
from urllib.error import HTTPError
from urllib.parse import urljoin, urlsplit, urlunsplit
from urllib.request import Request, urlopen

from pydantic import ValidationError

from models.constants import (
    DEFAULT_ACESTEP_API_URL,
    DEFAULT_AUDIO_MIME_TYPE,
    DEFAULT_DURATION_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    QUERY_RESULT_PATH,
    RELEASE_TASK_PATH,
)
from models.errors import AudioFetchError, TaskQueryError, TaskSubmissionError
from models.task import SongRequestResult, TaskOutcome, TaskResult

logger = logging.getLogger(__name__)

TEXT_OPTIONS = ("lyrics", "key", "genre", "model", "audio_format", "time_signature")
VALUE_OPTIONS = (
    "bpm",
    "top_k",
    "top_p",
    "temperature",
    "cfg_scale",
    "seed",
    "batch_size",
    "inference_steps",
    "thinking",
    "use_format",
    "use_random_seed",
    "lm_temperature",
    "lm_cfg_scale",
)


def get_server_url() -> str:
    url = os.getenv("ACESTEP_SERVER_URL") or os.getenv("ACESTEP_API_URL") or DEFAULT_ACESTEP_API_URL
    return url.rstrip("/")


def make_absolute_url(base_url: str, path: str) -> str:
    """Join ``path`` onto ``base_url``; scheme and host of ``path`` are ignored."""
    parts = urlsplit(path)
    relative = urlunsplit(("", "", parts.path, parts.query, ""))
    return urljoin(f"{base_url}/", relative.lstrip("/"))


def post_json(url: str, payload: dict[str, Any]) -> dict[str, Any]:
    request = Request(
        url=url,
        method="POST",
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )
    with urlopen(request, timeout=HTTP_TIMEOUT_SECONDS) as response:
        body = response.read().decode("utf-8")
    parsed = json.loads(body)
    if not isinstance(parsed, dict):
        raise RuntimeError("Unexpected JSON response")
    return parsed


def build_release_payload(caption: str, duration: Optional[int], options: dict[str, Any]) -> dict[str, Any]:
    unknown = set(options) - set(TEXT_OPTIONS) - set(VALUE_OPTIONS)
    if unknown:
        raise TypeError(f"Unsupported song options: {', '.join(sorted(unknown))}")

    payload: dict[str, Any] = {
        "caption": caption,
        "duration": DEFAULT_DURATION_SECONDS if duration is None else duration,
    }
    for name in TEXT_OPTIONS:
        if options.get(name):
            payload[name] = options[name]
    for name in VALUE_OPTIONS:
        if options.get(name) is not None:
            payload[name] = options[name]
    return payload


def decode_outcomes(result_json: Any) -> list[TaskOutcome]:
    if not isinstance(result_json, str):
        return []
    try:
        parsed = json.loads(result_json)
    except json.JSONDecodeError:
        return []

    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        return []

    # Entries keep their position: callers read the first outcome's file.
    outcomes: list[TaskOutcome] = []
    for entry in parsed:
        if not isinstance(entry, dict):
            logger.debug("Malformed task outcome: %s", entry)
            entry = {}
        outcomes.append(TaskOutcome.model_validate(entry))
    return outcomes


class AceStepClient:
    """HTTP client for the ACE-Step task API.

    Tasks are created with ``/release_task``, polled with ``/query_result`` and
    the generated audio is downloaded from the file path the result points at.
    """

    def __init__(self, base_url: Optional[str] = None) -> None:
        self.base_url = (base_url or get_server_url()).rstrip("/")

    def request_song(
        self,
        caption: str,
        duration: Optional[int] = DEFAULT_DURATION_SECONDS,
        **options: Any,
    ) -> SongRequestResult:
        payload = build_release_payload(caption, duration, options)
        response = post_json(make_absolute_url(self.base_url, RELEASE_TASK_PATH), payload)

        # API wraps responses: { "code": 200, "error": null, "data": { "task_id": ... } }
        data = response.get("data") or response
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not isinstance(task_id, str) or not task_id:
            error = response.get("error")
            if isinstance(error, str) and error:
                raise TaskSubmissionError(error)
            raise TaskSubmissionError(f"Missing task_id in response: {response}")

        logger.debug("Released ACE-Step task %s", task_id)
        status = data.get("status")
        queue_position = data.get("queue_position")
        return SongRequestResult(
            task_id=task_id,
            status=status if isinstance(status, str) else None,
            queue_position=queue_position if isinstance(queue_position, int) else None,
        )

    def query_result(self, task_id_list: list[str]) -> list[TaskResult]:
        response = post_json(
            make_absolute_url(self.base_url, QUERY_RESULT_PATH),
            {"task_id_list": task_id_list},
        )
        data = response.get("data")
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise TaskQueryError(f"Unexpected query_result response: {response}")

        results: list[TaskResult] = []
        for entry in data:
            if not isinstance(entry, dict):
                raise TaskQueryError(f"Unexpected task entry: {entry}")
            try:
                results.append(
                    TaskResult(
                        task_id=str(entry.get("task_id") or ""),
                        result=decode_outcomes(entry.get("result")),
                        status=entry.get("status", 0),
                        progress_text=entry.get("progress_text"),
                    )
                )
            except ValidationError as exc:
                raise TaskQueryError(f"Malformed task entry: {entry}") from exc
        return results

    def get_song_from_url(self, url: str) -> dict[str, str]:
        request = Request(url=make_absolute_url(self.base_url, url), method="GET")
        try:
            with urlopen(request, timeout=HTTP_TIMEOUT_SECONDS) as response:
                if not 200 <= response.status < 300:
                    raise AudioFetchError("Failed to fetch audio")
                body = response.read()
                mime_type = response.headers.get("Content-Type") or DEFAULT_AUDIO_MIME_TYPE
        except HTTPError as exc:
            raise AudioFetchError("Failed to fetch audio") from exc

        return {
            "base64": base64.b64encode(body).decode("ascii"),
            "mimeType": mime_type,
        }
