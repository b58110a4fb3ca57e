"""
Unit tests for SongStore.
"""

import os
import sqlite3
import tempfile

import pytest

from stagepass.database import Database, StageRepository
from stagepass.errors import PersistenceError, ValidationError
from stagepass.songs import SongStore


@pytest.fixture
def temp_db():
    """Create a temporary database."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def stages(temp_db):
    return StageRepository(temp_db)


@pytest.fixture
def stage(stages):
    return stages.create("Friday Night", "111111", 10, False)


@pytest.fixture
def song_store(temp_db):
    return SongStore(temp_db)


def test_add_and_list_in_creation_order(song_store, stage):
    """Songs come back oldest first."""
    first = song_store.add_song(stage.id, "Imagine", "John Lennon")
    second = song_store.add_song(stage.id, "Hey Jude")
    third = song_store.add_song(stage.id, "Yesterday", video_id="yt-1")

    songs = song_store.list_songs(stage.id)

    assert [s.id for s in songs] == [first.id, second.id, third.id]
    assert songs[0].artist == "John Lennon"
    assert songs[1].artist is None
    assert songs[2].video_id == "yt-1"
    assert all(s.stage_id == stage.id for s in songs)
    assert songs[0].created_at is not None


def test_add_trims_fields(song_store, stage):
    record = song_store.add_song(stage.id, "  Imagine ", "  ", " yt-1 ")
    assert record.title == "Imagine"
    assert record.artist is None
    assert record.video_id == "yt-1"


def test_add_empty_title_rejected(song_store, stage):
    with pytest.raises(ValidationError):
        song_store.add_song(stage.id, "   ")
    assert song_store.list_songs(stage.id) == []


def test_add_to_unknown_stage_rejected(song_store):
    with pytest.raises(ValidationError):
        song_store.add_song("no-such-stage", "Imagine")


def test_add_to_terminated_stage_rejected(song_store, stages, stage):
    stages.terminate(stage.id)
    with pytest.raises(ValidationError):
        song_store.add_song(stage.id, "Imagine")


def test_songs_are_scoped_to_stage(song_store, stages, stage):
    other = stages.create("Other", "222222", 10, False)
    song_store.add_song(stage.id, "Imagine")
    song_store.add_song(other.id, "Hey Jude")

    assert [s.title for s in song_store.list_songs(stage.id)] == ["Imagine"]
    assert [s.title for s in song_store.list_songs(other.id)] == ["Hey Jude"]


def test_remove_song(song_store, stage):
    keep = song_store.add_song(stage.id, "Imagine")
    drop = song_store.add_song(stage.id, "Hey Jude")

    assert song_store.remove_song(drop.id, stage.id)
    assert [s.id for s in song_store.list_songs(stage.id)] == [keep.id]

    # Already gone
    assert not song_store.remove_song(drop.id, stage.id)


def test_remove_needs_matching_stage(song_store, stages, stage):
    other = stages.create("Other", "222222", 10, False)
    record = song_store.add_song(stage.id, "Imagine")

    assert not song_store.remove_song(record.id, other.id)
    assert len(song_store.list_songs(stage.id)) == 1


def test_storage_failure_raises_persistence_error(temp_db, song_store, stage):
    """sqlite errors surface as PersistenceError."""
    conn = sqlite3.connect(temp_db.db_path)
    conn.execute("DROP TABLE songs")
    conn.commit()
    conn.close()

    with pytest.raises(PersistenceError):
        song_store.list_songs(stage.id)
