from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Optional
from urllib.error import HTTPError, URLError

from pydantic import ValidationError

from models.constants import (
    DEFAULT_AUDIO_MIME_TYPE,
    DEFAULT_PROGRESS_TEXT,
    GENERATION_CANCELLED_ERROR,
    GENERATION_FAILED_ERROR,
    GENERATION_TIMEOUT_ERROR,
    MAX_GENERATION_SECONDS,
    NO_AUDIO_URL_ERROR,
    POLL_INTERVAL_SECONDS,
    TASK_STATUS_FAILED,
    TASK_STATUS_SUCCEEDED,
    UNKNOWN_ERROR,
    WORKER_WAIT_SECONDS,
)
from models.errors import TaskQueryError
from models.queue import AudioPayload, PendingItem
from models.schemas import TrackSettings
from models.task import TaskClient, TaskResult
from services.queue_store import QueueStore

logger = logging.getLogger(__name__)

TEXT_PARAMS = ("lyrics", "key", "genre", "audio_format", "time_signature", "model")
VALUE_PARAMS = (
    "bpm",
    "temperature",
    "seed",
    "batch_size",
    "inference_steps",
    "thinking",
    "use_format",
    "use_random_seed",
    "lm_temperature",
    "lm_cfg_scale",
    "top_k",
    "top_p",
    "cfg_scale",
)

PollOutcomeKind = Literal["succeeded", "failed", "timed_out", "cancelled"]


@dataclass(frozen=True)
class PollOutcome:
    kind: PollOutcomeKind
    result: Optional[TaskResult] = None
    polls: int = 0


def song_request_params(settings: TrackSettings) -> dict[str, Any]:
    """Caption and duration plus every optional parameter that is actually set."""
    params: dict[str, Any] = {"caption": settings.caption, "duration": settings.duration}
    for name in TEXT_PARAMS:
        value = getattr(settings, name)
        if value:
            params[name] = value
    for name in VALUE_PARAMS:
        value = getattr(settings, name)
        if value is not None:
            params[name] = value
    return params


def poll_task(
    task_client: TaskClient,
    task_id: str,
    *,
    started_at: float,
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
    max_wait_seconds: float = MAX_GENERATION_SECONDS,
    on_progress: Optional[Callable[[str], None]] = None,
    stop_event: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
) -> PollOutcome:
    """Poll ``task_id`` until it reaches a terminal status or the deadline passes.

    The deadline is ``started_at + max_wait_seconds`` on ``clock``, so time
    spent submitting the task counts against the budget. Waits between polls
    end early when ``stop_event`` is set.
    """
    stop_event = stop_event or threading.Event()
    polls = 0
    while clock() - started_at < max_wait_seconds:
        results = task_client.query_result([task_id])
        polls += 1
        if not results:
            raise TaskQueryError(f"No result returned for task {task_id}")
        result = results[0]

        if on_progress is not None:
            on_progress(result.progress_text or DEFAULT_PROGRESS_TEXT)

        if result.status == TASK_STATUS_SUCCEEDED:
            return PollOutcome("succeeded", result, polls)
        if result.status == TASK_STATUS_FAILED:
            return PollOutcome("failed", result, polls)

        if stop_event.wait(poll_interval_seconds):
            return PollOutcome("cancelled", result, polls)

    return PollOutcome("timed_out", None, polls)


def decode_audio(payload: dict[str, str]) -> AudioPayload:
    data = base64.b64decode(payload.get("base64") or "", validate=True)
    return AudioPayload(data=data, mime_type=payload.get("mimeType") or DEFAULT_AUDIO_MIME_TYPE)


class GenerationPipeline:
    """Moves queue items through the task client one at a time.

    A worker thread waits until the store can promote its oldest added item,
    submits it, polls until a terminal status or timeout, and records the
    outcome. The store's busy flag stays set for the whole round trip and is
    released in ``finally`` so a failing item never stalls the queue.
    """

    def __init__(
        self,
        store: QueueStore,
        task_client: TaskClient,
        *,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        max_wait_seconds: float = MAX_GENERATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._task_client = task_client
        self._poll_interval_seconds = poll_interval_seconds
        self._max_wait_seconds = max_wait_seconds
        self._clock = clock
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._store.condition:
            if self.running:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._worker, args=(self._stop_event,), name="generation-pipeline", daemon=True
            )
            self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        with self._store.condition:
            self._store.condition.notify_all()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    def _worker(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            with self._store.condition:
                while not stop_event.is_set() and not self._store.can_promote():
                    self._store.condition.wait(timeout=WORKER_WAIT_SECONDS)
                if stop_event.is_set():
                    return
                item = self._store.promote_next()
            if item is None:
                continue

            try:
                self.process(item, stop_event)
            finally:
                self._store.release_active()

    def process(self, item: PendingItem, stop_event: Optional[threading.Event] = None) -> None:
        """Submit ``item`` and record its terminal state on the store."""
        stop_event = stop_event or threading.Event()
        try:
            started_at = self._clock()
            request = self._task_client.request_song(**song_request_params(item.settings))
            self._store.update_progress(item.id, DEFAULT_PROGRESS_TEXT, task_id=request.task_id)
            logger.info("Queue item %s submitted as task %s", item.id, request.task_id)

            outcome = poll_task(
                self._task_client,
                request.task_id,
                started_at=started_at,
                poll_interval_seconds=self._poll_interval_seconds,
                max_wait_seconds=self._max_wait_seconds,
                on_progress=lambda text: self._store.update_progress(item.id, text),
                stop_event=stop_event,
                clock=self._clock,
            )

            if outcome.kind == "succeeded":
                song_url = outcome.result.first_file if outcome.result else None
                if not song_url:
                    self._fail(item, NO_AUDIO_URL_ERROR)
                    return
                audio = decode_audio(self._task_client.get_song_from_url(song_url))
                self._store.complete(item.id, audio)
                logger.info("Queue item %s completed (%d bytes)", item.id, len(audio.data))
            elif outcome.kind == "failed":
                self._fail(item, GENERATION_FAILED_ERROR)
            elif outcome.kind == "cancelled":
                self._fail(item, GENERATION_CANCELLED_ERROR)
            else:
                self._fail(item, GENERATION_TIMEOUT_ERROR)
        except (
            RuntimeError,
            URLError,
            HTTPError,
            json.JSONDecodeError,
            TimeoutError,
            ValidationError,
            binascii.Error,
        ) as exc:
            logger.error("ACE-Step API error: %s: %s", type(exc).__name__, exc)
            self._fail(item, str(exc) or UNKNOWN_ERROR)
        except Exception as exc:  # pragma: no cover - final safety net
            logger.error("Unexpected generation error: %s: %s", type(exc).__name__, exc)
            self._fail(item, str(exc) or UNKNOWN_ERROR)

    def _fail(self, item: PendingItem, error: str) -> None:
        logger.warning("Queue item %s failed: %s", item.id, error)
        self._store.fail(item.id, error)
