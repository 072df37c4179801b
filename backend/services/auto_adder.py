from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Optional

from models.constants import AUTO_ADDER_INTERVAL_SECONDS, DEFAULT_TARGET_SIZE
from models.queue import AddedItem
from models.schemas import TrackSettings
from services.queue_store import QueueStore

logger = logging.getLogger(__name__)


class AutoAdder:
    """Keeps the queue topped up to ``target_size`` while enabled.

    A daemon thread ticks every ``interval_seconds``. Disabling sets the flag
    under the store lock before the thread is told to stop, so a tick that is
    already due cannot add anything afterwards.
    """

    def __init__(
        self,
        store: QueueStore,
        settings_provider: Callable[[], TrackSettings],
        *,
        interval_seconds: float = AUTO_ADDER_INTERVAL_SECONDS,
        target_size: int = DEFAULT_TARGET_SIZE,
    ) -> None:
        self._store = store
        self._settings_provider = settings_provider
        self._interval_seconds = interval_seconds
        self._target_size = target_size
        self._enabled = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def enabled(self) -> bool:
        with self._store.condition:
            return self._enabled

    @property
    def target_size(self) -> int:
        with self._store.condition:
            return self._target_size

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def set_target_size(self, target_size: int) -> None:
        if target_size < 1:
            raise ValueError("target_size must be at least 1")
        with self._store.condition:
            self._target_size = target_size

    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.start()
        else:
            self.stop()

    def start(self) -> None:
        with self._store.condition:
            self._enabled = True
            if self.running:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="auto-adder", daemon=True
            )
            self._thread.start()
        logger.info("Auto-adder started (target size %d)", self._target_size)

    def stop(self) -> None:
        with self._store.condition:
            self._enabled = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
            logger.info("Auto-adder stopped")

    def tick(self) -> Optional[AddedItem]:
        with self._store.condition:
            if not self._enabled or self._store.is_full(self._target_size):
                return None
            return self._store.add_item(self._settings_provider())

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval_seconds):
            try:
                self.tick()
            except Exception as exc:  # pragma: no cover - keep the timer alive
                logger.error("Auto-adder tick failed: %s: %s", type(exc).__name__, exc)
