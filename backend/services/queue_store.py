from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Optional
from uuid import uuid4

from models.queue import (
    AddedItem,
    AudioPayload,
    CompletedItem,
    FailedItem,
    PendingItem,
    QueueItem,
)
from models.schemas import TrackSettings

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class QueueStore:
    """Every queue item across its lifecycle.

    Items live in four disjoint containers: ``added`` (waiting), the single
    active slot (``pending``), ``completed`` and ``failed``. All reads and
    writes happen under ``condition``; each mutation wakes waiters and then
    runs the subscribed listeners while the lock is still held.
    """

    def __init__(self) -> None:
        self.condition = threading.Condition(threading.RLock())
        self._added: list[AddedItem] = []
        self._pending: Optional[PendingItem] = None
        self._completed: list[CompletedItem] = []
        self._failed: list[FailedItem] = []
        self._busy = False
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self.condition:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self.condition:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self.condition.notify_all()
        for listener in list(self._listeners):
            listener()

    # Derived views

    @property
    def pending(self) -> Optional[PendingItem]:
        with self.condition:
            return self._pending

    @property
    def busy(self) -> bool:
        with self.condition:
            return self._busy

    @property
    def size(self) -> int:
        with self.condition:
            return len(self._added) + (1 if self._pending else 0) + len(self._completed) + len(self._failed)

    @property
    def added_count(self) -> int:
        with self.condition:
            return len(self._added)

    @property
    def completed_count(self) -> int:
        with self.condition:
            return len(self._completed)

    @property
    def failed_count(self) -> int:
        with self.condition:
            return len(self._failed)

    @property
    def has_completed(self) -> bool:
        return self.completed_count > 0

    @property
    def now_playing(self) -> Optional[CompletedItem]:
        with self.condition:
            for item in self._completed:
                if item.audio.data:
                    return item
            return None

    def is_full(self, target_size: int) -> bool:
        return self.size >= target_size

    def can_promote(self) -> bool:
        with self.condition:
            return not self._busy and self._pending is None and bool(self._added)

    def completed_items(self) -> list[CompletedItem]:
        with self.condition:
            return list(self._completed)

    def items(self) -> list[QueueItem]:
        with self.condition:
            pending: list[QueueItem] = [self._pending] if self._pending else []
            return [*self._completed, *self._failed, *pending, *self._added]

    def get(self, item_id: str) -> Optional[QueueItem]:
        with self.condition:
            for item in self.items():
                if item.id == item_id:
                    return item
            return None

    # User operations

    def add_item(self, settings: TrackSettings) -> AddedItem:
        item = AddedItem(id=str(uuid4()), settings=settings)
        with self.condition:
            self._added.append(item)
            logger.debug("Added queue item %s", item.id)
            self._changed()
        return item

    def remove_item(self, item_id: str) -> bool:
        with self.condition:
            removed = False
            for container in (self._added, self._completed, self._failed):
                for index, item in enumerate(container):
                    if item.id == item_id:
                        del container[index]
                        removed = True
                        break
            if self._pending is not None and self._pending.id == item_id:
                self._pending = None
                removed = True

            if removed:
                logger.debug("Removed queue item %s", item_id)
                self._changed()
            return removed

    def skip(self) -> Optional[CompletedItem]:
        with self.condition:
            if not self._completed:
                return None
            skipped = self._completed.pop(0)
            self._changed()
            return skipped

    def clear_completed(self) -> int:
        with self.condition:
            count = len(self._completed)
            if count:
                self._completed.clear()
                self._changed()
            return count

    def clear_failed(self) -> int:
        with self.condition:
            count = len(self._failed)
            if count:
                self._failed.clear()
                self._changed()
            return count

    def clear_all(self) -> None:
        with self.condition:
            self._added.clear()
            self._completed.clear()
            self._failed.clear()
            self._pending = None
            self._changed()

    # Pipeline transitions

    def promote_next(self) -> Optional[PendingItem]:
        with self.condition:
            if not self.can_promote():
                return None
            next_item = self._added.pop(0)
            self._pending = PendingItem(id=next_item.id, settings=next_item.settings)
            self._busy = True
            logger.debug("Promoted queue item %s to the active slot", next_item.id)
            self._changed()
            return self._pending

    def update_progress(
        self, item_id: str, progress: Optional[str], task_id: Optional[str] = None
    ) -> None:
        with self.condition:
            if self._pending is None or self._pending.id != item_id:
                return
            self._pending.progress = progress
            if task_id is not None:
                self._pending.task_id = task_id
            self._changed()

    def complete(self, item_id: str, audio: AudioPayload) -> Optional[CompletedItem]:
        with self.condition:
            if self._pending is None or self._pending.id != item_id:
                logger.info("Discarding audio for removed queue item %s", item_id)
                return None
            settings = self._pending.settings
            completed = CompletedItem(
                id=item_id,
                caption=settings.caption,
                duration=settings.duration,
                audio=audio,
                bpm=settings.bpm,
                key=settings.key,
                genre=settings.genre,
            )
            self._completed.append(completed)
            self._pending = None
            self._changed()
            return completed

    def fail(self, item_id: str, error: str) -> Optional[FailedItem]:
        with self.condition:
            if self._pending is None or self._pending.id != item_id:
                logger.info("Dropping failure for removed queue item %s: %s", item_id, error)
                return None
            failed = FailedItem(
                id=item_id,
                settings=self._pending.settings,
                error=error,
                progress=self._pending.progress,
            )
            self._failed.append(failed)
            self._pending = None
            self._changed()
            return failed

    def release_active(self) -> None:
        with self.condition:
            self._pending = None
            self._busy = False
            self._changed()
