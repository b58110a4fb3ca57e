"""
Song request storage for StagePass.

Thin gateway over the songs table: add, list in creation order, remove.
"""

import logging
from typing import List, Optional

from .database import Database, SongRepository, StageRepository
from .errors import ValidationError
from .models import SongRecord


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class SongStore:
    """CRUD surface over persisted song requests of a stage."""

    def __init__(self, database: Database):
        """
        Initialize SongStore.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = SongRepository(database)
        self.stage_repository = StageRepository(database)
        self.logger = logging.getLogger(__name__)

    def list_songs(self, stage_id: str) -> List[SongRecord]:
        """Get all song requests of a stage, oldest first."""
        return self.repository.get_all(stage_id)

    def add_song(
        self,
        stage_id: str,
        title: str,
        artist: Optional[str] = None,
        video_id: Optional[str] = None,
    ) -> SongRecord:
        """
        Add a song request to a stage.

        Args:
            stage_id: Stage the request belongs to
            title: Song title (required, non-empty)
            artist: Artist name (optional)
            video_id: Already known video id, e.g. picked from search (optional)

        Returns:
            The persisted record

        Raises:
            ValidationError: empty title or unknown/terminated stage
            PersistenceError: storage failure
        """
        title = _clean(title)
        if not title:
            raise ValidationError("Title cannot be empty")

        stage = self.stage_repository.get_by_id(stage_id)
        if not stage or stage.is_terminated:
            raise ValidationError("Stage not found or already terminated")

        record = self.repository.add(stage_id, title, _clean(artist), _clean(video_id))
        self.logger.info(
            "Added song to stage %s: %s by %s (ID: %s, video_id: %s)",
            stage_id,
            record.title,
            record.artist,
            record.id,
            record.video_id,
        )
        return record

    def remove_song(self, song_id: str, stage_id: str) -> bool:
        """Remove a song request; False when it does not exist in that stage."""
        removed = self.repository.remove(song_id, stage_id)
        if removed:
            self.logger.info("Removed song %s from stage %s", song_id, stage_id)
        return removed
