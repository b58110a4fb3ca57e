"""
Data models for StagePass.

Defines typed dataclasses for all entities used throughout the application.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

# Shown when the submitter of a song request is not known
DEFAULT_REQUESTED_BY = "Guest"


@dataclass
class User:
    """Participant with UUID-based identity."""

    id: str
    display_name: str
    stage_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Stage:
    """A karaoke room identified by a join code."""

    id: str
    name: str
    join_code: str  # Six digits, e.g. "042917"
    max_capacity: int = 10
    is_private: bool = False
    is_terminated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SongRecord:
    """Persisted song request for a stage."""

    id: str
    stage_id: str
    title: str
    artist: Optional[str] = None
    video_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class QueueEntry:
    """One song request in the in-memory playback queue."""

    id: str
    title: str
    artist: Optional[str] = None
    requested_by: str = DEFAULT_REQUESTED_BY
    # Cached video id; once set it is never resolved again
    resolved_video_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: SongRecord, requested_by: str = DEFAULT_REQUESTED_BY):
        """Map a server record into a queue entry."""
        return cls(
            id=record.id,
            title=record.title,
            artist=record.artist,
            requested_by=requested_by,
            resolved_video_id=record.video_id,
        )


@dataclass
class SearchResult:
    """Video search hit offered to users adding a song."""

    video_id: str
    title: str
    thumbnail_url: Optional[str] = None


@dataclass
class Notification:
    """Transient, non-fatal message for the live-room view."""

    kind: str  # "info", "warning" or "error"
    title: str
    message: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[datetime] = None
