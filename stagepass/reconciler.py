"""
Periodic refresh of live-room state from storage.

StageReconciler feeds the stage's song list into the queue controller;
ParticipantMonitor keeps a fresh copy of the participant list. Both poll on
a background thread and keep polling after errors.
"""

import logging
import threading
from typing import List, Optional

from .controller import QueueController
from .models import User
from .songs import SongStore
from .user import UserManager


class PeriodicPoller:
    """Runs poll() every interval seconds on a daemon thread."""

    # Extra wait after a failed poll
    ERROR_BACKOFF_SECONDS = 5.0

    def __init__(self, interval: float, name: str):
        self.interval = interval
        self.name = name
        self.logger = logging.getLogger(__name__)
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stop_event = threading.Event()  # Wakes the thread on stop

    def poll(self) -> None:
        raise NotImplementedError

    def poll_once(self) -> bool:
        """Run one poll, logging instead of raising. Returns True on success."""
        try:
            self.poll()
            return True
        except Exception as e:
            self.logger.error("Error in %s: %s", self.name, e, exc_info=True)
            return False

    def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._stop_event.clear()

        def loop():
            while self._running:
                if self.poll_once():
                    self._stop_event.wait(self.interval)
                else:
                    self._stop_event.wait(self.interval + self.ERROR_BACKOFF_SECONDS)

        self._thread = threading.Thread(target=loop, daemon=True, name=self.name)
        self._thread.start()
        self.logger.info("%s started (every %ss)", self.name, self.interval)

    def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=0.5)
            if self._thread.is_alive():
                self.logger.warning("%s thread did not stop within timeout", self.name)

        self.logger.info("%s stopped", self.name)

    @property
    def running(self) -> bool:
        return self._running


class StageReconciler(PeriodicPoller):
    """Replaces the controller's queue with the stored list when it changed."""

    def __init__(self, controller: QueueController, song_store: SongStore, stage_id: str, interval: float = 5.0):
        super().__init__(interval, name=f"StageReconciler-{stage_id[:8]}")
        self.controller = controller
        self.song_store = song_store
        self.stage_id = stage_id

    def poll(self) -> None:
        records = self.song_store.list_songs(self.stage_id)
        if self.controller.replace_if_different(records):
            self.logger.debug("Queue for stage %s refreshed from storage", self.stage_id)


class ParticipantMonitor(PeriodicPoller):
    """Keeps the participant list of a stage fresh."""

    def __init__(self, user_manager: UserManager, stage_id: str, interval: float = 5.0):
        super().__init__(interval, name=f"ParticipantMonitor-{stage_id[:8]}")
        self.user_manager = user_manager
        self.stage_id = stage_id
        self._participants: List[User] = []
        self._lock = threading.Lock()

    def poll(self) -> None:
        participants = self.user_manager.list_participants(self.stage_id)
        with self._lock:
            self._participants = participants

    @property
    def participants(self) -> List[User]:
        with self._lock:
            return list(self._participants)
