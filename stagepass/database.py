"""
Database module for StagePass.

Handles SQLite database initialization, schema creation, connection management
and the repositories that read and write each table.
"""

import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .errors import PersistenceError
from .models import ConfigEntry, SongRecord, Stage, User


def _parse_timestamp(value) -> Optional[datetime]:
    """Parse a sqlite TIMESTAMP column value."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _now() -> str:
    # Microsecond precision keeps creation order stable for rapid inserts
    return datetime.now().isoformat(sep=' ')


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses ~/.stagepass/stagepass.db
        """
        self.logger = logging.getLogger(__name__)

        if db_path is None:
            home = Path.home()
            data_dir = home / '.stagepass'
            data_dir.mkdir(exist_ok=True)
            db_path = str(data_dir / 'stagepass.db')

        self.db_path = db_path
        self._ensure_schema()
        self.logger.info('Database initialized at %s', self.db_path)

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS stages (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                join_code TEXT NOT NULL UNIQUE,
                max_capacity INTEGER DEFAULT 10,
                is_private INTEGER NOT NULL DEFAULT 0,
                is_terminated INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS songs (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                artist TEXT,
                video_id TEXT,
                created_at TIMESTAMP NOT NULL,
                stage_id TEXT NOT NULL,
                FOREIGN KEY (stage_id) REFERENCES stages(id) ON DELETE CASCADE
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL,
                stage_id TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                FOREIGN KEY (stage_id) REFERENCES stages(id) ON DELETE SET NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_songs_stage_created
            ON songs(stage_id, created_at)
        ''')

        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_users_stage
            ON users(stage_id)
        ''')

        conn.commit()
        conn.close()
        self.logger.debug('Database schema created/verified')

    def get_connection(self):
        """
        Get a new database connection (thread-safe).

        Each caller gets its own connection and is responsible for closing it.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    def close(self):
        """Close database connection (no-op since we use per-call connections)."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class _Repository:
    """Shared helpers for table repositories."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def _fetch_all(self, query: str, params=()) -> List[sqlite3.Row]:
        conn = self.database.get_connection()
        try:
            return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            self.logger.error('Query failed: %s', e)
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def _fetch_one(self, query: str, params=()) -> Optional[sqlite3.Row]:
        rows = self._fetch_all(query, params)
        return rows[0] if rows else None

    def _execute(self, query: str, params=()) -> int:
        """Run a write statement and return the number of affected rows."""
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            conn.rollback()
            self.logger.error('Write failed: %s', e)
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()


class StageRepository(_Repository):
    """Reads and writes the stages table."""

    @staticmethod
    def _row_to_stage(row: sqlite3.Row) -> Stage:
        return Stage(
            id=row['id'],
            name=row['name'],
            join_code=row['join_code'],
            max_capacity=row['max_capacity'],
            is_private=bool(row['is_private']),
            is_terminated=bool(row['is_terminated']),
            created_at=_parse_timestamp(row['created_at']),
            updated_at=_parse_timestamp(row['updated_at']),
        )

    def create(self, name: str, join_code: str, max_capacity: int, is_private: bool) -> Stage:
        stage_id = str(uuid.uuid4())
        now = _now()
        self._execute(
            '''
            INSERT INTO stages (id, name, join_code, max_capacity, is_private,
                                is_terminated, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 0, ?, ?)
            ''',
            (stage_id, name, join_code, max_capacity, int(is_private), now, now),
        )
        return self.get_by_id(stage_id)

    def get_by_id(self, stage_id: str) -> Optional[Stage]:
        row = self._fetch_one('SELECT * FROM stages WHERE id = ?', (stage_id,))
        return self._row_to_stage(row) if row else None

    def get_by_join_code(self, join_code: str) -> Optional[Stage]:
        row = self._fetch_one('SELECT * FROM stages WHERE join_code = ?', (join_code,))
        return self._row_to_stage(row) if row else None

    def join_code_exists(self, join_code: str) -> bool:
        return self._fetch_one('SELECT 1 FROM stages WHERE join_code = ?', (join_code,)) is not None

    def terminate(self, stage_id: str) -> bool:
        """Mark a stage terminated and delete its songs in one transaction."""
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                'UPDATE stages SET is_terminated = 1, updated_at = ? WHERE id = ?',
                (_now(), stage_id),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                return False
            conn.execute('DELETE FROM songs WHERE stage_id = ?', (stage_id,))
            conn.execute('UPDATE users SET stage_id = NULL WHERE stage_id = ?', (stage_id,))
            conn.commit()
            return True
        except sqlite3.Error as e:
            conn.rollback()
            self.logger.error('Failed to terminate stage %s: %s', stage_id, e)
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()


class SongRepository(_Repository):
    """Reads and writes the songs table."""

    @staticmethod
    def _row_to_song(row: sqlite3.Row) -> SongRecord:
        return SongRecord(
            id=row['id'],
            stage_id=row['stage_id'],
            title=row['title'],
            artist=row['artist'],
            video_id=row['video_id'],
            created_at=_parse_timestamp(row['created_at']),
        )

    def add(
        self,
        stage_id: str,
        title: str,
        artist: Optional[str] = None,
        video_id: Optional[str] = None,
    ) -> SongRecord:
        song_id = str(uuid.uuid4())
        self._execute(
            '''
            INSERT INTO songs (id, title, artist, video_id, created_at, stage_id)
            VALUES (?, ?, ?, ?, ?, ?)
            ''',
            (song_id, title, artist, video_id, _now(), stage_id),
        )
        return self.get_item(song_id)

    def get_item(self, song_id: str) -> Optional[SongRecord]:
        row = self._fetch_one('SELECT * FROM songs WHERE id = ?', (song_id,))
        return self._row_to_song(row) if row else None

    def get_all(self, stage_id: str) -> List[SongRecord]:
        rows = self._fetch_all(
            'SELECT * FROM songs WHERE stage_id = ? ORDER BY created_at ASC, rowid ASC',
            (stage_id,),
        )
        return [self._row_to_song(row) for row in rows]

    def remove(self, song_id: str, stage_id: str) -> bool:
        return self._execute(
            'DELETE FROM songs WHERE id = ? AND stage_id = ?', (song_id, stage_id)
        ) > 0


class UserRepository(_Repository):
    """Reads and writes the users table."""

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row['id'],
            display_name=row['display_name'],
            stage_id=row['stage_id'],
            created_at=_parse_timestamp(row['created_at']),
        )

    def create(self, user_id: str, display_name: str) -> User:
        now = _now()
        self._execute(
            'INSERT INTO users (id, display_name, created_at, updated_at) VALUES (?, ?, ?, ?)',
            (user_id, display_name, now, now),
        )
        return self.get_by_id(user_id)

    def get_by_id(self, user_id: str) -> Optional[User]:
        row = self._fetch_one('SELECT * FROM users WHERE id = ?', (user_id,))
        return self._row_to_user(row) if row else None

    def update_display_name(self, user_id: str, display_name: str) -> bool:
        return self._execute(
            'UPDATE users SET display_name = ?, updated_at = ? WHERE id = ?',
            (display_name, _now(), user_id),
        ) > 0

    def set_stage(self, user_id: str, stage_id: Optional[str]) -> bool:
        return self._execute(
            'UPDATE users SET stage_id = ?, updated_at = ? WHERE id = ?',
            (stage_id, _now(), user_id),
        ) > 0

    def get_by_stage(self, stage_id: str) -> List[User]:
        rows = self._fetch_all(
            'SELECT * FROM users WHERE stage_id = ? ORDER BY display_name ASC', (stage_id,)
        )
        return [self._row_to_user(row) for row in rows]

    def count_by_stage(self, stage_id: str) -> int:
        row = self._fetch_one('SELECT COUNT(*) AS n FROM users WHERE stage_id = ?', (stage_id,))
        return row['n'] if row else 0


class ConfigRepository(_Repository):
    """Reads and writes the config table."""

    def initialize_defaults(self, defaults: Dict[str, Optional[str]]) -> None:
        """Insert default values for keys that are not stored yet."""
        conn = self.database.get_connection()
        try:
            for key, value in defaults.items():
                if value is None:
                    continue
                conn.execute(
                    'INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)', (key, str(value))
                )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def get(self, key: str) -> Optional[ConfigEntry]:
        row = self._fetch_one('SELECT * FROM config WHERE key = ?', (key,))
        if not row:
            return None
        return ConfigEntry(
            key=row['key'], value=row['value'], updated_at=_parse_timestamp(row['updated_at'])
        )

    def set(self, key: str, value: str) -> bool:
        self._execute(
            '''
            INSERT INTO config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            ''',
            (key, value),
        )
        return True

    def get_all(self) -> List[ConfigEntry]:
        rows = self._fetch_all('SELECT * FROM config ORDER BY key')
        return [
            ConfigEntry(key=row['key'], value=row['value'],
                        updated_at=_parse_timestamp(row['updated_at']))
            for row in rows
        ]
