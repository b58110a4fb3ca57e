"""
Queue controller for StagePass.

Owns the live-room playback queue: the ordered entries, which entry is
current, and what the player is believed to be doing. Every public operation
takes the controller lock, mutates state, and finishes with a reconcile pass
that re-establishes a valid cursor and starts loading the current entry.

The cursor is tracked by entry identity and only translated to an index at
the API boundary, so reordering or removing other entries never moves it.
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .errors import (
    PlaybackError,
    ResolutionError,
    ResolutionNotFound,
    ResolutionTransportError,
    StagePassError,
    ValidationError,
)
from .models import DEFAULT_REQUESTED_BY, Notification, QueueEntry, SongRecord
from .player import PlayerAdapter, PlayerState

# Runs a zero-argument callable somewhere off the caller's stack
Spawn = Callable[[Callable[[], None]], None]


def _spawn_thread(work: Callable[[], None]) -> None:
    threading.Thread(target=work, daemon=True, name="VideoResolver").start()


class PlaybackIntent(Enum):
    """What the controller believes the player is doing."""

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class ResolutionTicket:
    """Identifies one outstanding video lookup."""

    entry_id: str
    generation: int


class QueueController:
    """Playback queue state machine for one live-room session."""

    MAX_NOTIFICATIONS = 20

    def __init__(
        self,
        player: PlayerAdapter,
        resolver,  # YouTubeResolver or anything with resolve_karaoke(title, artist)
        song_store=None,  # SongStore; None keeps the queue purely local
        stage_id: Optional[str] = None,
        spawn: Optional[Spawn] = None,
        autostart: bool = True,
        requested_by_placeholder: str = DEFAULT_REQUESTED_BY,
    ):
        """
        Initialize QueueController.

        Args:
            player: Player adapter receiving load/play/pause/stop commands
            resolver: Video resolver used for entries without a cached video id
            song_store: Song store used to delete dropped entries
            stage_id: Stage whose songs this controller plays
            spawn: Runs resolver calls in the background (default: daemon thread)
            autostart: Select the first entry as soon as the queue is non-empty
            requested_by_placeholder: Name shown when the submitter is unknown
        """
        self.player = player
        self.resolver = resolver
        self.song_store = song_store
        self.stage_id = stage_id
        self.requested_by_placeholder = requested_by_placeholder
        self.logger = logging.getLogger(__name__)
        self.lock = threading.RLock()

        self._spawn = spawn or _spawn_thread
        self._started = autostart

        self._entries: List[QueueEntry] = []
        self._current_id: Optional[str] = None
        self._intent = PlaybackIntent.IDLE
        self._player_state: Optional[PlayerState] = None
        self._loaded_video_id: Optional[str] = None
        self._resolving: Optional[ResolutionTicket] = None
        self._generation = 0
        self._notifications = deque(maxlen=self.MAX_NOTIFICATIONS)
        # Ids removed here that storage may still list; kept out of polled lists
        self._dropped_ids: Set[str] = set()

    # =========================================================================
    # Read-only view
    # =========================================================================

    @property
    def entries(self) -> List[QueueEntry]:
        with self.lock:
            return list(self._entries)

    @property
    def cursor(self) -> Optional[int]:
        """Index of the current entry, or None when unset."""
        with self.lock:
            return self._index_of(self._current_id)

    @property
    def current_entry(self) -> Optional[QueueEntry]:
        with self.lock:
            index = self._index_of(self._current_id)
            return self._entries[index] if index is not None else None

    @property
    def intent(self) -> PlaybackIntent:
        return self._intent

    @property
    def loaded_video_id(self) -> Optional[str]:
        return self._loaded_video_id

    @property
    def is_resolving(self) -> bool:
        return self._resolving is not None

    @property
    def is_busy(self) -> bool:
        """True while a video is being looked up or loaded."""
        return self._resolving is not None or self._intent == PlaybackIntent.LOADING

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready state for the live-room view."""
        with self.lock:
            cursor = self._index_of(self._current_id)
            return {
                "queue": [
                    {**asdict(entry), "is_current": index == cursor}
                    for index, entry in enumerate(self._entries)
                ],
                "cursor": cursor,
                "current_entry_id": self._current_id,
                "intent": self._intent.value,
                "loaded_video_id": self._loaded_video_id,
                "resolving": self._resolving is not None,
                "can_skip": cursor is not None and not self.is_busy,
            }

    def drain_notifications(self) -> List[Dict[str, Any]]:
        with self.lock:
            notifications = [asdict(n) for n in self._notifications]
            self._notifications.clear()
        for n in notifications:
            n["created_at"] = n["created_at"].isoformat()
        return notifications

    # =========================================================================
    # Internal helpers (lock held)
    # =========================================================================

    def _index_of(self, entry_id: Optional[str]) -> Optional[int]:
        if entry_id is None:
            return None
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        return None

    def _notify(self, kind: str, title: str, message: str) -> None:
        self._notifications.append(Notification(kind=kind, title=title, message=message))
        log = self.logger.warning if kind in ("warning", "error") else self.logger.info
        log("%s: %s", title, message)

    def _abandon_resolution(self) -> None:
        """Forget any outstanding lookup; its result will be rejected as stale."""
        if self._resolving is not None:
            self.logger.debug("Abandoning resolution for entry %s", self._resolving.entry_id)
        self._resolving = None
        self._generation += 1

    def _unload(self) -> None:
        self._abandon_resolution()
        self._loaded_video_id = None
        self._player_state = None
        self._intent = PlaybackIntent.IDLE

    def _cue(self, video_id: str) -> None:
        self._loaded_video_id = video_id
        self._intent = PlaybackIntent.LOADING
        self.player.load_and_play(video_id)

    def _reconcile(self) -> None:
        """Re-establish a valid cursor and start loading the current entry."""
        if not self._entries:
            if self._current_id is not None or self._loaded_video_id is not None:
                self.logger.info("Queue is empty, playback idle")
            self._current_id = None
            self._unload()
            return

        if self._index_of(self._current_id) is None:
            if self._current_id is not None:
                # Callers re-point the cursor before dropping the current
                # entry; reaching here means it vanished some other way.
                self._unload()
                self._current_id = None
            if not self._started:
                return
            self._current_id = self._entries[0].id

        if self._loaded_video_id is None and self._resolving is None:
            self._select(self._entries[self._index_of(self._current_id)])

    def _select(self, entry: QueueEntry) -> None:
        """Load the entry's cached video or start looking one up."""
        self._generation += 1
        if entry.resolved_video_id:
            self.logger.info("Playing %s (cached video %s)", entry.title, entry.resolved_video_id)
            self._cue(entry.resolved_video_id)
            return

        ticket = ResolutionTicket(entry_id=entry.id, generation=self._generation)
        self._resolving = ticket
        self._intent = PlaybackIntent.LOADING
        title, artist = entry.title, entry.artist
        self.logger.info("Resolving video for %s", entry.title)
        self._spawn(lambda: self._run_resolution(ticket, title, artist))

    def _repoint_after_loss(self, lost_index: int) -> None:
        """Move the cursor to what now sits at lost_index, or the front."""
        self._unload()
        if not self._entries:
            self._current_id = None
        elif lost_index < len(self._entries):
            self._current_id = self._entries[lost_index].id
        else:
            self._current_id = self._entries[0].id

    def _forget_remote(self, entry: QueueEntry) -> None:
        """Delete a dropped entry from storage so the next poll does not bring it back."""
        if self.song_store is None or self.stage_id is None:
            return
        try:
            self.song_store.remove_song(entry.id, self.stage_id)
        except StagePassError as e:
            self.logger.warning("Could not delete song %s from storage: %s", entry.id, e)

    def _drop_current(self, forget_remote: bool = True) -> Optional[QueueEntry]:
        """Remove the entry at the cursor and re-point the cursor."""
        index = self._index_of(self._current_id)
        if index is None:
            return None
        entry = self._entries.pop(index)
        self._dropped_ids.add(entry.id)
        self._repoint_after_loss(index)
        if forget_remote:
            self._forget_remote(entry)
        return entry

    def _is_live(self, ticket: ResolutionTicket) -> bool:
        return (
            self._resolving == ticket
            and ticket.generation == self._generation
            and self._current_id == ticket.entry_id
        )

    # =========================================================================
    # Video resolution
    # =========================================================================

    def _run_resolution(self, ticket: ResolutionTicket, title: str, artist: Optional[str]) -> None:
        """Worker body: call the resolver and hand the outcome back."""
        try:
            video_id = self.resolver.resolve_karaoke(title, artist)
        except ResolutionError as e:
            self.fail_resolution(ticket, e)
            return
        except ValidationError as e:
            self.fail_resolution(ticket, ResolutionNotFound(str(e)))
            return
        except Exception as e:
            self.logger.error("Resolver crashed for %s: %s", title, e, exc_info=True)
            self.fail_resolution(ticket, ResolutionTransportError(str(e)))
            return

        if video_id:
            self.complete_resolution(ticket, video_id)
        else:
            self.fail_resolution(ticket, ResolutionNotFound(f"No karaoke video for {title}"))

    def complete_resolution(self, ticket: ResolutionTicket, video_id: str) -> bool:
        """
        Apply a successful lookup.

        Returns:
            True if the video was loaded, False if the result was stale
        """
        with self.lock:
            index = self._index_of(ticket.entry_id)
            if index is not None and not self._entries[index].resolved_video_id:
                self._entries[index].resolved_video_id = video_id

            if not self._is_live(ticket):
                self.logger.info("Discarding stale video %s for entry %s", video_id, ticket.entry_id)
                return False

            self._resolving = None
            self._cue(video_id)
            return True

    def fail_resolution(self, ticket: ResolutionTicket, error: ResolutionError) -> bool:
        """
        Drop the entry whose lookup failed and move on.

        Returns:
            True if the entry was dropped, False if the failure was stale
        """
        with self.lock:
            if not self._is_live(ticket):
                self.logger.info("Ignoring stale resolution failure for entry %s", ticket.entry_id)
                return False

            entry = self.current_entry
            if isinstance(error, ResolutionNotFound):
                self._notify("warning", "Song not found",
                             f"No karaoke video found for {entry.title}, skipping")
            else:
                self._notify("error", "Search failed",
                             f"Could not look up {entry.title} ({error}), skipping")
            self._resolving = None
            self._drop_current()
            self._reconcile()
            return True

    # =========================================================================
    # Player events
    # =========================================================================

    def _is_stale_event(self, video_id: Optional[str]) -> bool:
        return video_id is not None and video_id != self._loaded_video_id

    def on_player_ready(self) -> None:
        """Player (re)created; reload whatever should be playing."""
        with self.lock:
            if self._loaded_video_id:
                self.logger.info("Player ready, reloading %s", self._loaded_video_id)
                self._intent = PlaybackIntent.LOADING
                self.player.load_and_play(self._loaded_video_id)

    def on_player_state(self, state: PlayerState, video_id: Optional[str] = None) -> None:
        """
        React to a player state change.

        Args:
            state: New player state
            video_id: Video the event refers to, when the page knows it;
                events for anything but the loaded video are ignored
        """
        with self.lock:
            if self._is_stale_event(video_id):
                self.logger.debug("Ignoring %s for stale video %s", state.value, video_id)
                return
            self._player_state = state

            if state == PlayerState.PLAYING:
                self._intent = PlaybackIntent.PLAYING
            elif state == PlayerState.PAUSED:
                self._intent = PlaybackIntent.PAUSED
            elif state in (PlayerState.BUFFERING, PlayerState.UNSTARTED):
                if self._loaded_video_id:
                    self._intent = PlaybackIntent.LOADING
            elif state == PlayerState.CUED:
                if self._intent != PlaybackIntent.PLAYING:
                    # Autoplay is not reliable without an explicit call
                    self.player.play()
            elif state == PlayerState.ENDED:
                self._intent = PlaybackIntent.IDLE
                entry = self._drop_current()
                if entry:
                    self._notify("info", "Song finished", f"{entry.title} finished")
                self._reconcile()

    def on_player_error(self, code: Optional[int], video_id: Optional[str] = None) -> None:
        """Drop the current entry after a playback error."""
        with self.lock:
            if self._is_stale_event(video_id):
                self.logger.debug("Ignoring error %s for stale video %s", code, video_id)
                return
            error = PlaybackError(code)
            entry = self._drop_current()
            if entry:
                self._notify("error", "Playback error", f"Could not play {entry.title} ({error}), skipping")
            self._reconcile()

    # =========================================================================
    # User actions
    # =========================================================================

    def add_entry(
        self,
        title: str,
        artist: Optional[str] = None,
        video_id: Optional[str] = None,
        entry_id: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> QueueEntry:
        """
        Append a song request.

        Args:
            title: Song title (required)
            artist: Artist (optional)
            video_id: Already known video id (optional, skips resolution)
            entry_id: Server id once persisted; a provisional id is generated otherwise
            requested_by: Submitter's display name

        Returns:
            The appended entry (or the existing one if entry_id is already queued)
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title cannot be empty")

        with self.lock:
            if entry_id is not None:
                index = self._index_of(entry_id)
                if index is not None:
                    return self._entries[index]

            entry = QueueEntry(
                id=entry_id or str(uuid.uuid4()),
                title=title,
                artist=artist or None,
                requested_by=requested_by or self.requested_by_placeholder,
                resolved_video_id=video_id or None,
            )
            self._entries.append(entry)
            self.logger.info("Queued %s (ID: %s) for %s", entry.title, entry.id, entry.requested_by)
            self._reconcile()
            return entry

    def skip(self) -> bool:
        """
        Drop the current entry and move on.

        Returns:
            False while a video is being looked up or loaded, or with no current entry
        """
        with self.lock:
            if self._index_of(self._current_id) is None:
                self.logger.debug("Nothing to skip")
                return False
            if self.is_busy:
                self.logger.info("Skip ignored while loading")
                return False

            self.player.stop()
            entry = self._drop_current()
            self._notify("info", "Skipped", f"Skipped {entry.title}")
            self._reconcile()
            return True

    def remove_at(self, index: int) -> QueueEntry:
        """
        Remove the entry at index.

        Storage is updated first; the local queue only changes once it
        succeeds. Removing the current entry behaves like a skip.

        Raises:
            IndexError: no entry at index
            PersistenceError: storage refused the delete
        """
        with self.lock:
            if not 0 <= index < len(self._entries):
                raise IndexError(f"No queue entry at index {index}")
            entry = self._entries[index]

            if self.song_store is not None and self.stage_id is not None:
                if not self.song_store.remove_song(entry.id, self.stage_id):
                    self.logger.debug("Song %s was not in storage", entry.id)

            if index == self._index_of(self._current_id):
                self.player.stop()
                self._drop_current(forget_remote=False)
            else:
                del self._entries[index]
                self._dropped_ids.add(entry.id)
            self._notify("info", "Removed", f"Removed {entry.title}")
            self._reconcile()
            return entry

    def play_now(self, index: int) -> bool:
        """
        Move the entry at index to the front and play it immediately.

        Returns:
            False (no change) while loading, for the current entry, or a bad index
        """
        with self.lock:
            if self.is_busy:
                self.logger.info("Play now ignored while loading")
                return False
            if not 0 <= index < len(self._entries) or index == self._index_of(self._current_id):
                return False

            entry = self._entries.pop(index)
            self._entries.insert(0, entry)
            if self._loaded_video_id:
                self.player.stop()
            self._unload()
            self._intent = PlaybackIntent.LOADING
            self._current_id = entry.id
            self._started = True
            self.logger.info("Playing %s now", entry.title)
            self._reconcile()
            return True

    def move_up(self, index: int) -> bool:
        """Move the entry at index to play right after the current one (index 1)."""
        with self.lock:
            if not 1 < index < len(self._entries):
                return False
            entry = self._entries.pop(index)
            self._entries.insert(1, entry)
            self.logger.info("Moved %s up next", entry.title)
            self._reconcile()
            return True

    def toggle_play_pause(self) -> Optional[str]:
        """
        Pause if playing, resume if loaded, or start the queue.

        Returns:
            "pause", "play", "start", or None when there is nothing to do
        """
        with self.lock:
            if self._player_state == PlayerState.PLAYING:
                self.player.pause()
                return "pause"
            if self._loaded_video_id and self._intent != PlaybackIntent.PLAYING:
                self.player.play()
                return "play"
            if self._index_of(self._current_id) is None and self._entries:
                self._started = True
                self._current_id = self._entries[0].id
                self._reconcile()
                return "start"
            return None

    # =========================================================================
    # Reconciliation against storage
    # =========================================================================

    def replace_if_different(self, records: Iterable[SongRecord]) -> bool:
        """
        Replace the queue with the server's list when the id sequences differ.

        Cached video ids survive for entries whose id is unchanged. Entries
        already dropped here are left out even if the list was fetched
        before storage forgot them.

        Returns:
            True if the queue was replaced
        """
        records = list(records)
        with self.lock:
            listed = {r.id for r in records}
            self._dropped_ids &= listed
            records = [r for r in records if r.id not in self._dropped_ids]
            if [r.id for r in records] == [e.id for e in self._entries]:
                return False

            prior = {entry.id: entry for entry in self._entries}
            fresh = []
            for record in records:
                previous = prior.get(record.id)
                entry = QueueEntry.from_record(
                    record,
                    requested_by=previous.requested_by if previous else self.requested_by_placeholder,
                )
                if not entry.resolved_video_id and previous:
                    entry.resolved_video_id = previous.resolved_video_id
                fresh.append(entry)

            old_index = self._index_of(self._current_id)
            self._entries = fresh
            self.logger.info("Queue replaced from storage (%s entries)", len(fresh))

            if old_index is not None and self._index_of(self._current_id) is None:
                if self._loaded_video_id:
                    self.player.stop()
                self._repoint_after_loss(old_index)
            self._reconcile()
            return True

    def close(self) -> None:
        """Tear down: stop the player and discard the queue."""
        with self.lock:
            if self._loaded_video_id:
                self.player.stop()
            self._entries = []
            self._dropped_ids.clear()
            self._current_id = None
            self._unload()
