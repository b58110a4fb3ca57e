"""
Live-room sessions for StagePass.

A LiveRoom is one viewer's session on a stage: its own player outbox, queue
controller and pollers. RoomManager keeps them by room id.
"""

import logging
import threading
import uuid
from typing import Dict, List, Optional

from .config_manager import ConfigManager
from .controller import QueueController, Spawn
from .player import CommandQueuePlayer
from .reconciler import ParticipantMonitor, StageReconciler
from .songs import SongStore
from .user import UserManager


class LiveRoom:
    """Everything one live-room view needs while it is open."""

    def __init__(
        self,
        stage_id: str,
        user_id: Optional[str],
        controller: QueueController,
        player: CommandQueuePlayer,
        reconciler: StageReconciler,
        participant_monitor: ParticipantMonitor,
    ):
        self.id = str(uuid.uuid4())
        self.stage_id = stage_id
        self.user_id = user_id
        self.controller = controller
        self.player = player
        self.reconciler = reconciler
        self.participant_monitor = participant_monitor

    def start(self) -> None:
        # Load the stored queue before the page's first poll
        self.reconciler.poll_once()
        self.participant_monitor.poll_once()
        self.reconciler.start()
        self.participant_monitor.start()

    def close(self) -> None:
        self.reconciler.stop()
        self.participant_monitor.stop()
        self.controller.close()

    def state(self) -> dict:
        """Controller snapshot plus pending player commands and notifications."""
        state = self.controller.snapshot()
        state["room_id"] = self.id
        state["stage_id"] = self.stage_id
        state["player_commands"] = self.player.drain_commands()
        state["notifications"] = self.controller.drain_notifications()
        state["participants"] = [
            {"id": user.id, "name": user.display_name}
            for user in self.participant_monitor.participants
        ]
        return state


class RoomManager:
    """Opens, finds and closes live rooms."""

    def __init__(
        self,
        config_manager: ConfigManager,
        song_store: SongStore,
        user_manager: UserManager,
        resolver,
        spawn: Optional[Spawn] = None,
        start_pollers: bool = True,
    ):
        """
        Initialize RoomManager.

        Args:
            config_manager: ConfigManager for poll interval and placeholders
            song_store: Song store shared by all rooms
            user_manager: UserManager for participant lists
            resolver: Video resolver shared by all rooms
            spawn: Background runner for resolver calls (tests pass a deferred one)
            start_pollers: Start background polling threads when a room opens
        """
        self.config_manager = config_manager
        self.song_store = song_store
        self.user_manager = user_manager
        self.resolver = resolver
        self.spawn = spawn
        self.start_pollers = start_pollers
        self.logger = logging.getLogger(__name__)
        self._rooms: Dict[str, LiveRoom] = {}
        self._lock = threading.Lock()

    def open_room(self, stage_id: str, user_id: Optional[str] = None) -> LiveRoom:
        interval = self.config_manager.get_float("poll_interval_seconds", 5.0)
        player = CommandQueuePlayer()
        controller = QueueController(
            player=player,
            resolver=self.resolver,
            song_store=self.song_store,
            stage_id=stage_id,
            spawn=self.spawn,
            requested_by_placeholder=self.config_manager.get("requested_by_placeholder"),
        )
        room = LiveRoom(
            stage_id=stage_id,
            user_id=user_id,
            controller=controller,
            player=player,
            reconciler=StageReconciler(controller, self.song_store, stage_id, interval),
            participant_monitor=ParticipantMonitor(self.user_manager, stage_id, interval),
        )
        with self._lock:
            self._rooms[room.id] = room

        if self.start_pollers:
            room.start()
        else:
            room.reconciler.poll_once()
            room.participant_monitor.poll_once()

        self.logger.info("Opened room %s for stage %s", room.id, stage_id)
        return room

    def get_room(self, room_id: str) -> Optional[LiveRoom]:
        with self._lock:
            return self._rooms.get(room_id)

    def rooms_for_stage(self, stage_id: str) -> List[LiveRoom]:
        with self._lock:
            return [room for room in self._rooms.values() if room.stage_id == stage_id]

    def close_room(self, room_id: str) -> bool:
        with self._lock:
            room = self._rooms.pop(room_id, None)
        if not room:
            return False
        room.close()
        self.logger.info("Closed room %s", room_id)
        return True

    def close_stage(self, stage_id: str) -> int:
        """Close every room of a stage; returns how many were closed."""
        closed = 0
        for room in self.rooms_for_stage(stage_id):
            if self.close_room(room.id):
                closed += 1
        return closed

    def close_all(self) -> None:
        with self._lock:
            room_ids = list(self._rooms)
        for room_id in room_ids:
            self.close_room(room_id)
