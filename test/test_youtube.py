"""
Unit tests for YouTubeResolver.

Uses mocks to avoid actual API calls.
"""

from unittest.mock import Mock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from stagepass.errors import ResolutionTransportError, ValidationError
from stagepass.youtube import YouTubeResolver, split_title


@pytest.fixture
def mock_config_manager():
    """Create a mock ConfigManager for tests."""
    config = Mock()
    config.get.side_effect = lambda key, default=None: {
        "youtube_api_key": "fake_api_key",
    }.get(key, default)
    return config


@pytest.fixture
def resolver(mock_config_manager):
    """Create a YouTubeResolver instance with mocked API."""
    with patch("stagepass.youtube.build") as mock_build:
        mock_youtube = Mock()
        mock_build.return_value = mock_youtube
        resolver = YouTubeResolver(mock_config_manager)
        # Force initialization of the lazy client
        resolver._youtube = mock_youtube
        resolver._last_api_key = "fake_api_key"
        yield resolver


def set_search_response(resolver, response):
    mock_search = Mock()
    mock_search.list.return_value.execute.return_value = response
    resolver._youtube.search.return_value = mock_search
    return mock_search


def http_error(status=403):
    return HttpError(httplib2.Response({"status": status, "reason": "Forbidden"}), b'{"error": {"message": "quota exceeded"}}')


def test_resolve_karaoke_found(resolver):
    """First hit of a single karaoke search is returned."""
    mock_search = set_search_response(resolver, {"items": [{"id": {"videoId": "abc123"}}]})

    assert resolver.resolve_karaoke("Imagine", "John Lennon") == "abc123"

    kwargs = mock_search.list.call_args[1]
    assert kwargs["q"] == "Imagine John Lennon karaoke"
    assert kwargs["type"] == "video"
    assert kwargs["videoEmbeddable"] == "true"
    assert kwargs["maxResults"] == 1
    mock_search.list.assert_called_once()


def test_resolve_karaoke_without_artist(resolver):
    mock_search = set_search_response(resolver, {"items": [{"id": {"videoId": "abc123"}}]})

    resolver.resolve_karaoke("Imagine")

    assert mock_search.list.call_args[1]["q"] == "Imagine karaoke"


def test_resolve_karaoke_not_found(resolver):
    """An empty result set means no video, not an error."""
    set_search_response(resolver, {"items": []})
    assert resolver.resolve_karaoke("Nonexistent Song") is None


def test_resolve_karaoke_empty_title(resolver):
    with pytest.raises(ValidationError):
        resolver.resolve_karaoke("  ")
    resolver._youtube.search.assert_not_called()


def test_resolve_karaoke_http_error(resolver):
    mock_search = Mock()
    mock_search.list.return_value.execute.side_effect = http_error()
    resolver._youtube.search.return_value = mock_search

    with pytest.raises(ResolutionTransportError):
        resolver.resolve_karaoke("Imagine")


def test_resolve_karaoke_malformed_response(resolver):
    set_search_response(resolver, {"items": [{"snippet": {}}]})
    with pytest.raises(ResolutionTransportError):
        resolver.resolve_karaoke("Imagine")


def test_resolve_karaoke_without_api_key():
    """A missing key is a transport failure."""
    config = Mock()
    config.get.return_value = None
    resolver = YouTubeResolver(config)

    assert not resolver.is_configured()
    with pytest.raises(ResolutionTransportError):
        resolver.resolve_karaoke("Imagine")


def test_client_rebuilt_when_key_changes():
    """Changing the API key at runtime builds a new client."""
    keys = {"youtube_api_key": "key-1"}
    config = Mock()
    config.get.side_effect = lambda key, default=None: keys.get(key, default)

    with patch("stagepass.youtube.build") as mock_build:
        resolver = YouTubeResolver(config)
        assert resolver.is_configured()
        assert resolver.is_configured()
        assert mock_build.call_count == 1

        keys["youtube_api_key"] = "key-2"
        assert resolver.is_configured()
        assert mock_build.call_count == 2
        assert mock_build.call_args[1]["developerKey"] == "key-2"


def test_search_general(resolver):
    """General search returns id, title and thumbnail for each hit."""
    mock_search = set_search_response(
        resolver,
        {
            "items": [
                {
                    "id": {"videoId": "vid1"},
                    "snippet": {
                        "title": "Bohemian Rhapsody - Queen (Karaoke Version)",
                        "thumbnails": {"default": {"url": "http://thumb1.jpg"}},
                    },
                },
                {
                    "id": {"videoId": "vid2"},
                    "snippet": {"title": "Song Two", "thumbnails": {}},
                },
                {"id": {"channelId": "not-a-video"}, "snippet": {"title": "Channel"}},
            ]
        },
    )

    results = resolver.search_general("queen karaoke", max_results=3)

    assert mock_search.list.call_args[1]["maxResults"] == 3
    assert mock_search.list.call_args[1]["part"] == "snippet"
    assert [r.video_id for r in results] == ["vid1", "vid2"]
    assert results[0].thumbnail_url == "http://thumb1.jpg"
    assert results[1].thumbnail_url is None


def test_search_general_failure_returns_empty(resolver):
    mock_search = Mock()
    mock_search.list.return_value.execute.side_effect = http_error(500)
    resolver._youtube.search.return_value = mock_search

    assert resolver.search_general("anything") == []


def test_search_general_validation(resolver):
    with pytest.raises(ValidationError):
        resolver.search_general("")
    with pytest.raises(ValidationError):
        resolver.search_general("song", max_results=0)
    with pytest.raises(ValidationError):
        resolver.search_general("song", max_results=11)


@pytest.mark.parametrize(
    "video_title, expected",
    [
        ("Bohemian Rhapsody - Queen (Karaoke Version)", ("Bohemian Rhapsody", "Queen")),
        ("Hey Jude | The Beatles Karaoke", ("Hey Jude", "The Beatles")),
        ("Wonderwall [Karaoke]", ("Wonderwall", None)),
        ("", ("Unknown Title", None)),
    ],
)
def test_split_title(video_title, expected):
    assert split_title(video_title) == expected
