"""
Main entry point for StagePass.

Initializes all components and starts the server.
"""

import argparse
import logging
from typing import Optional

import uvicorn

from .config_manager import ConfigManager
from .database import Database
from .room import RoomManager
from .songs import SongStore
from .stage import StageManager
from .user import UserManager
from .web.server import create_app
from .youtube import YouTubeResolver

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


class StagePassServer:
    """Main server class that orchestrates all components."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize all components.

        Args:
            db_path: SQLite file to use (default ~/.stagepass/stagepass.db)
        """
        logger.info("Initializing StagePass server...")

        self.database = Database(db_path)
        self.config_manager = ConfigManager(self.database)

        self.resolver = YouTubeResolver(self.config_manager)
        if not self.resolver.is_configured():
            logger.warning(
                "YouTube API key not configured. Songs cannot be resolved to videos. "
                "Set YOUTUBE_API_KEY or the youtube_api_key config value."
            )

        self.user_manager = UserManager(self.database)
        self.stage_manager = StageManager(self.database, self.user_manager)
        self.song_store = SongStore(self.database)
        self.room_manager = RoomManager(
            self.config_manager,
            self.song_store,
            self.user_manager,
            self.resolver,
        )

        self.web_app = create_app(
            self.config_manager,
            self.user_manager,
            self.stage_manager,
            self.song_store,
            self.resolver,
            self.room_manager,
        )

        self.uvicorn_server = None

        logger.info("StagePass server initialized")

    def run(self, host: str = "0.0.0.0", port: int = 8000):
        """Start the server (blocking)."""
        logger.info("=" * 60)
        logger.info("StagePass is running!")
        logger.info("Web UI: http://%s:%s/live-room?joinCode=<code>", host, port)
        logger.info("API: http://%s:%s/api", host, port)
        logger.info("=" * 60)

        config = uvicorn.Config(self.web_app, host=host, port=port, log_level="info")
        self.uvicorn_server = uvicorn.Server(config)
        self.uvicorn_server.run()

    def stop(self):
        """Stop all components."""
        logger.info("Stopping StagePass server...")

        if self.uvicorn_server:
            self.uvicorn_server.should_exit = True

        if self.room_manager:
            self.room_manager.close_all()

        if self.database:
            self.database.close()

        logger.info("StagePass server stopped")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="StagePass - shared karaoke stages")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default 8000)")
    parser.add_argument("--db-path", default=None, help="SQLite database file")
    args = parser.parse_args()

    server = StagePassServer(db_path=args.db_path)
    try:
        server.run(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


if __name__ == "__main__":
    main()
