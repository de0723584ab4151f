"""Exception hierarchy for the Spotify PKCE flow.

Every error carries a human-readable message plus optional context so
route handlers and the session bridge can report it without re-parsing.
"""

from __future__ import annotations

from typing import Any


class SpotifyPkceError(Exception):
    """Base exception for all spotify_pkce errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(SpotifyPkceError):
    """Missing or invalid client id, redirect URI or port. Fatal at startup."""


class InvalidStateError(SpotifyPkceError):
    """Callback state was never issued, has expired, or was already consumed.

    The three causes are deliberately reported the same way.
    """


class UpstreamExchangeError(SpotifyPkceError):
    """The token endpoint rejected the authorization code / verifier pair."""

    def __init__(self, message: str, status: int | None = None, **context: Any) -> None:
        super().__init__(message, status=status, **context)
        self.status = status


class SessionCheckError(SpotifyPkceError):
    """Validating the cached token failed (unreadable cache, client error)."""


class SpotifyApiError(SpotifyPkceError):
    """A Web API call returned a non-success response."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        reason: str | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, status=status, reason=reason, **context)
        self.status = status
        self.reason = reason


class PlaybackControlError(SpotifyPkceError):
    """A playback command failed after the automatic retry."""
