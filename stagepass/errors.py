"""
Error taxonomy for StagePass.

Gateways raise these; the queue controller absorbs the resolution and
playback ones, the web layer maps the rest to HTTP responses.
"""

from typing import Optional


class StagePassError(Exception):
    """Base class for all StagePass errors."""


class ValidationError(StagePassError):
    """Input rejected before any gateway call (empty title, bad join code, ...)."""


class PersistenceError(StagePassError):
    """Storage operation failed."""


class ResolutionError(StagePassError):
    """Looking up a playable video for a song failed."""


class ResolutionNotFound(ResolutionError):
    """The search returned no playable candidate."""


class ResolutionTransportError(ResolutionError):
    """The search call itself failed (network, parsing, quota, missing key)."""


class PlaybackError(StagePassError):
    """The embeddable player reported an error for the loaded video."""

    def __init__(self, code: Optional[int], message: Optional[str] = None):
        self.code = code
        super().__init__(message or f"Player error {code}")
