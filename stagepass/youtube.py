"""
YouTube video resolver for StagePass.

Turns a song title/artist into an embeddable video id via the YouTube Data
API v3, and offers general search for the add-song suggestions.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, List, Optional, Tuple

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .errors import ResolutionTransportError, ValidationError
from .models import SearchResult

if TYPE_CHECKING:
    from .config_manager import ConfigManager

MAX_SEARCH_RESULTS = 10

_TITLE_SEPARATORS = re.compile(r"[-–—|]")
_TITLE_NOISE = re.compile(r"karaoke|cover|instrumental", re.IGNORECASE)
_BRACKETED_NOISE = re.compile(r"karaoke|cover|instrumental|\(.*\)|\[.*\]", re.IGNORECASE)


def split_title(video_title: str) -> Tuple[str, Optional[str]]:
    """
    Best-effort split of a search result title into (title, artist).

    "Bohemian Rhapsody - Queen (Karaoke Version)" -> ("Bohemian Rhapsody", "Queen")
    """
    parts = _TITLE_SEPARATORS.split(video_title or "")
    title = parts[0].strip()
    artist = None
    if len(parts) > 1:
        artist = _TITLE_NOISE.split(parts[1])[0].strip(" ([") or None

    if not artist and len(parts) == 1:
        title = _BRACKETED_NOISE.sub("", title).strip()

    return title or "Unknown Title", artist


class YouTubeResolver:
    """Video resolver backed by the YouTube Data API."""

    def __init__(self, config_manager: "ConfigManager"):
        """
        Initialize YouTubeResolver.

        Args:
            config_manager: ConfigManager for runtime config access
        """
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager

        # Lazy-initialized YouTube API client
        self._youtube = None
        self._last_api_key: Optional[str] = None

    def _get_youtube_client(self):
        """
        Get or create YouTube API client.

        Returns None if API key is not configured.
        Reinitializes client if API key has changed (allowing runtime updates).
        """
        api_key = self.config_manager.get("youtube_api_key")

        if not api_key:
            self._youtube = None
            self._last_api_key = None
            return None

        if api_key != self._last_api_key:
            try:
                self._youtube = build("youtube", "v3", developerKey=api_key, cache_discovery=False)
                self._last_api_key = api_key
                self.logger.info("YouTube API client initialized")
            except Exception as e:
                self.logger.error("Failed to initialize YouTube API client: %s", e)
                self._youtube = None
                self._last_api_key = None

        return self._youtube

    def is_configured(self) -> bool:
        """Check if YouTube API key is configured and valid."""
        return self._get_youtube_client() is not None

    def resolve_karaoke(self, title: str, artist: Optional[str] = None) -> Optional[str]:
        """
        Find a karaoke video for a song.

        Issues exactly one search per call; caching is left to the caller.

        Args:
            title: Song title (required)
            artist: Artist name (optional)

        Returns:
            Video id of the first embeddable hit, or None when nothing matched

        Raises:
            ValidationError: empty title
            ResolutionTransportError: API not configured or the call failed
        """
        if not title or not title.strip():
            raise ValidationError("Title cannot be empty")

        youtube = self._get_youtube_client()
        if not youtube:
            raise ResolutionTransportError("YouTube API key not configured")

        query = " ".join(part.strip() for part in (title, artist, "karaoke") if part and part.strip())
        self.logger.debug("Searching YouTube (karaoke): %s", query)

        try:
            response = youtube.search().list(
                part="id",
                q=query,
                type="video",
                videoEmbeddable="true",
                maxResults=1,
            ).execute()
        except HttpError as e:
            self.logger.error("YouTube API error: %s", e)
            raise ResolutionTransportError(f"YouTube API error: {e}") from e
        except Exception as e:
            self.logger.error("Error searching YouTube: %s", e, exc_info=True)
            raise ResolutionTransportError(str(e)) from e

        try:
            items = response.get("items") or []
            video_id = items[0]["id"]["videoId"] if items else None
        except (KeyError, TypeError, AttributeError) as e:
            raise ResolutionTransportError(f"Malformed search response: {e}") from e

        if video_id:
            self.logger.info("Found video %s for query: %s", video_id, query)
        else:
            self.logger.info("No video found for query: %s", query)
        return video_id

    def search_general(self, query: str, max_results: int = 5) -> List[SearchResult]:
        """
        Search embeddable videos for song suggestions.

        Args:
            query: Free text query
            max_results: Number of hits, 1..10

        Returns:
            List of SearchResult; empty when the API is unavailable or fails
        """
        if not query or not query.strip():
            raise ValidationError("Search query cannot be empty")
        if not 1 <= max_results <= MAX_SEARCH_RESULTS:
            raise ValidationError(f"max_results must be between 1 and {MAX_SEARCH_RESULTS}")

        youtube = self._get_youtube_client()
        if not youtube:
            self.logger.warning("YouTube API key not configured, search unavailable")
            return []

        try:
            response = youtube.search().list(
                part="snippet",
                q=query,
                type="video",
                videoEmbeddable="true",
                maxResults=max_results,
            ).execute()
        except HttpError as e:
            self.logger.error("YouTube API error: %s", e)
            return []
        except Exception as e:
            self.logger.error("Error searching YouTube: %s", e, exc_info=True)
            return []

        results = []
        for item in response.get("items", []):
            video_id = item.get("id", {}).get("videoId")
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            thumbnail = snippet.get("thumbnails", {}).get("default", {}).get("url")
            results.append(
                SearchResult(
                    video_id=video_id,
                    title=snippet.get("title") or "Untitled",
                    thumbnail_url=thumbnail,
                )
            )

        self.logger.info("Found %s videos for query: %s", len(results), query)
        return results
