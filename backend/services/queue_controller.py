from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Optional

from models.constants import (
    AUTO_ADDER_INTERVAL_SECONDS,
    DEFAULT_TARGET_SIZE,
    MAX_GENERATION_SECONDS,
    POLL_INTERVAL_SECONDS,
)
from models.errors import NothingPlayingError
from models.queue import AddedItem, CompletedItem, item_to_dict
from models.schemas import TrackSettings
from models.task import TaskClient
from services.auto_adder import AutoAdder
from services.generation_pipeline import GenerationPipeline
from services.playback_controller import PlaybackController, PlaybackSession
from services.queue_store import QueueStore

logger = logging.getLogger(__name__)


class QueueController:
    """Owns the queue and the processes around it.

    One instance per application: the settings template, the queue store, the
    auto-adder loop, the generation pipeline and the playback controller.
    ``start`` launches the background processes and ``dispose`` stops them;
    both may be called more than once.
    """

    def __init__(
        self,
        task_client: TaskClient,
        *,
        settings: Optional[TrackSettings] = None,
        target_size: int = DEFAULT_TARGET_SIZE,
        auto_adder_interval_seconds: float = AUTO_ADDER_INTERVAL_SECONDS,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        max_wait_seconds: float = MAX_GENERATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_playback_started: Optional[Callable[[PlaybackSession], None]] = None,
    ) -> None:
        self._settings = settings or TrackSettings()
        self._settings_lock = threading.Lock()
        self.store = QueueStore()
        self.auto_adder = AutoAdder(
            self.store,
            lambda: self.settings,
            interval_seconds=auto_adder_interval_seconds,
            target_size=target_size,
        )
        self.pipeline = GenerationPipeline(
            self.store,
            task_client,
            poll_interval_seconds=poll_interval_seconds,
            max_wait_seconds=max_wait_seconds,
            clock=clock,
        )
        self.playback = PlaybackController(self.store, on_session_started=on_playback_started)
        self._started = False

    @property
    def settings(self) -> TrackSettings:
        with self._settings_lock:
            return self._settings

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self.pipeline.start()
        self.playback.start()
        self._started = True
        logger.info("Queue controller started")

    def dispose(self) -> None:
        self.auto_adder.stop()
        self.pipeline.stop()
        self.playback.stop()
        if self._started:
            logger.info("Queue controller disposed")
        self._started = False

    def update_settings(self, **changes: Any) -> TrackSettings:
        with self._settings_lock:
            merged = {**self._settings.model_dump(), **changes}
            self._settings = TrackSettings.model_validate(merged)
            return self._settings

    def add_song(self) -> AddedItem:
        return self.store.add_item(self.settings)

    def remove_item(self, item_id: str) -> bool:
        return self.store.remove_item(item_id)

    def skip(self) -> Optional[CompletedItem]:
        return self.store.skip()

    def clear_completed(self) -> int:
        return self.store.clear_completed()

    def clear_failed(self) -> int:
        return self.store.clear_failed()

    def clear_all(self) -> None:
        self.store.clear_all()

    def configure_auto_adder(
        self, *, enabled: Optional[bool] = None, target_size: Optional[int] = None
    ) -> dict[str, Any]:
        if target_size is not None:
            self.auto_adder.set_target_size(target_size)
        if enabled is not None:
            self.auto_adder.set_enabled(enabled)
        return self.auto_adder_status()

    def auto_adder_status(self) -> dict[str, Any]:
        return {
            "enabled": self.auto_adder.enabled,
            "target_size": self.auto_adder.target_size,
        }

    def queue_snapshot(self) -> dict[str, Any]:
        store = self.store
        with store.condition:
            now_playing = store.now_playing
            return {
                "items": [item_to_dict(item) for item in store.items()],
                "size": store.size,
                "added_count": store.added_count,
                "completed_count": store.completed_count,
                "failed_count": store.failed_count,
                "has_completed": store.has_completed,
                "is_full": store.is_full(self.auto_adder.target_size),
                "now_playing": now_playing.id if now_playing else None,
            }

    def now_playing(self) -> PlaybackSession:
        session = self.playback.session
        if session is None:
            raise NothingPlayingError("Nothing is playing")
        return session

    def report_playback_ended(self, item_id: str) -> None:
        self.playback.finish(item_id)

    def report_playback_error(self, item_id: str, reason: Optional[str] = None) -> None:
        self.playback.fail(item_id, reason)
