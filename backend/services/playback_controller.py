from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from models.errors import NothingPlayingError
from services.queue_store import QueueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackSession:
    item_id: str
    audio: bytes
    mime_type: str
    caption: str


class PlaybackController:
    """Plays completed items oldest-first, one session at a time.

    The session is opened as soon as the store reports a new "now playing"
    item. The player (usually the browser, through the HTTP API) reports the
    end of playback or a playback error; either way the item is removed from
    the store and the next completed item takes its place.

    ``on_session_started`` runs with the store lock held and must not block;
    raising from it counts as a playback error.
    """

    def __init__(
        self,
        store: QueueStore,
        on_session_started: Optional[Callable[[PlaybackSession], None]] = None,
    ) -> None:
        self._store = store
        self._on_session_started = on_session_started
        self._session: Optional[PlaybackSession] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def session(self) -> Optional[PlaybackSession]:
        with self._store.condition:
            return self._session

    def start(self) -> None:
        with self._store.condition:
            if self._unsubscribe is not None:
                return
            self._unsubscribe = self._store.subscribe(self._evaluate)
            self._evaluate()

    def stop(self) -> None:
        with self._store.condition:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            self._session = None

    def finish(self, item_id: str) -> None:
        self._close(item_id, "ended")

    def fail(self, item_id: str, reason: Optional[str] = None) -> None:
        self._close(item_id, f"error: {reason}" if reason else "error")

    def _close(self, item_id: str, how: str) -> None:
        with self._store.condition:
            if self._session is None or self._session.item_id != item_id:
                raise NothingPlayingError(f"Item {item_id} is not playing")
            logger.info("Playback of %s finished (%s)", item_id, how)
            self._session = None
            self._store.remove_item(item_id)
            self._evaluate()

    def _evaluate(self) -> None:
        with self._store.condition:
            if self._session is not None:
                if self._store.get(self._session.item_id) is not None:
                    return
                logger.info("Playback of %s dropped, item left the queue", self._session.item_id)
                self._session = None

            for completed in self._store.completed_items():
                if completed.audio.data:
                    break
                logger.warning("Removing %s, it has no audio to play", completed.id)
                self._store.remove_item(completed.id)
            # Removing an item re-enters this method and may already have opened a session.
            if self._session is not None:
                return

            item = self._store.now_playing
            if item is None:
                return

            session = PlaybackSession(
                item_id=item.id,
                audio=item.audio.data,
                mime_type=item.audio.mime_type,
                caption=item.caption,
            )
            self._session = session
            logger.info("Now playing %s", item.id)

            if self._on_session_started is None:
                return
            try:
                self._on_session_started(session)
            except Exception as exc:
                logger.error("Playback failed for %s: %s: %s", item.id, type(exc).__name__, exc)
                self._session = None
                self._store.remove_item(item.id)
