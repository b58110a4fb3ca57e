"""
Player adapter for StagePass.

The embeddable video player lives in the browser. The server side keeps a
command outbox that the page drains when it polls, and the page reports the
player's lifecycle events back through the web API.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Any, Dict, List, Optional


class PlayerState(Enum):
    """Lifecycle states reported by the embeddable player."""

    UNSTARTED = "unstarted"
    ENDED = "ended"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    CUED = "cued"

    @classmethod
    def from_widget_code(cls, code: int) -> "PlayerState":
        """Map the IFrame API's numeric state (-1, 0, 1, 2, 3, 5)."""
        return _WIDGET_CODES[code]


_WIDGET_CODES = {
    -1: PlayerState.UNSTARTED,
    0: PlayerState.ENDED,
    1: PlayerState.PLAYING,
    2: PlayerState.PAUSED,
    3: PlayerState.BUFFERING,
    5: PlayerState.CUED,
}


class PlayerAdapter(ABC):
    """Commands accepted by a video player."""

    @abstractmethod
    def load_and_play(self, video_id: str) -> None:
        """Load a video and start playing it."""

    @abstractmethod
    def play(self) -> None:
        """Start or resume the loaded video."""

    @abstractmethod
    def pause(self) -> None:
        """Pause the loaded video."""

    @abstractmethod
    def stop(self) -> None:
        """Stop and unload the current video."""


class CommandQueuePlayer(PlayerAdapter):
    """Player adapter for a browser-hosted player that polls for commands."""

    # Commands beyond this are dropped oldest-first if the page stops polling
    MAX_PENDING_COMMANDS = 50

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._outbox = deque(maxlen=self.MAX_PENDING_COMMANDS)
        self._sequence = 0
        self.ready = False
        self.last_state: Optional[PlayerState] = None
        self.last_error_code: Optional[int] = None

    def _push(self, command: str, **args: Any) -> None:
        with self._lock:
            self._sequence += 1
            self._outbox.append({"seq": self._sequence, "command": command, **args})
        self.logger.debug("Queued player command %s %s", command, args)

    def load_and_play(self, video_id: str) -> None:
        self._push("load_and_play", video_id=video_id)

    def play(self) -> None:
        self._push("play")

    def pause(self) -> None:
        self._push("pause")

    def stop(self) -> None:
        self._push("stop")

    def drain_commands(self) -> List[Dict[str, Any]]:
        """Hand all pending commands to the page, oldest first."""
        with self._lock:
            commands = list(self._outbox)
            self._outbox.clear()
        return commands

    def pending_commands(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._outbox)

    def record_ready(self) -> None:
        self.ready = True

    def record_state(self, state: PlayerState) -> None:
        self.last_state = state

    def record_error(self, code: Optional[int]) -> None:
        self.last_error_code = code
