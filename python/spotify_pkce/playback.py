"""Current-track state and skip controls on top of an authenticated session."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Literal

from .async_state import AsyncState
from .client import (
    CurrentPlayback,
    SpotifyClient,
    SpotifyDevice,
    SpotifyPlaylist,
    album_image,
    artist_names,
    playlist_id_from_context,
)
from .exceptions import PlaybackControlError
from .session import SessionContext

logger = logging.getLogger(__name__)

SkipAction = Literal["next", "previous"]

# Errors that mean "the device hint was wrong", retried once without it
_RETRYABLE = re.compile(r"502|NO_ACTIVE_DEVICE|bad gateway", re.IGNORECASE)

TRANSFER_SETTLE_SECONDS = 0.5


def is_retryable(error: Exception) -> bool:
    reason = getattr(error, "reason", None) or ""
    status = getattr(error, "status", None)
    return status == 502 or bool(_RETRYABLE.search(f"{error} {reason}"))


class PlaybackController:
    def __init__(self, session: SessionContext, settle_seconds: float = TRANSFER_SETTLE_SECONDS) -> None:
        self.session = session
        self.settle_seconds = settle_seconds
        self.playback = AsyncState(self._load_current_playback)
        self.control = AsyncState(self._run_control)
        self.playlist = AsyncState(self._load_playlist)

    @property
    def current(self) -> CurrentPlayback | None:
        return self.playback.data

    @property
    def track(self):
        return self.current.track if self.current else None

    @property
    def device(self) -> SpotifyDevice | None:
        return self.current.device if self.current else None

    @property
    def track_title(self) -> str:
        track = self.track
        return track.get("name", "Unknown") if track else "Nothing is playing"

    @property
    def track_subtitle(self) -> str:
        if not self.track:
            return "Start playback in Spotify to show the current track here."
        return artist_names(self.track) or "Unknown artist"

    @property
    def album_image(self) -> str | None:
        return album_image(self.track)

    async def fetch_current_track(self) -> CurrentPlayback | None:
        return await self.playback.execute()

    async def fetch_playlist(self) -> SpotifyPlaylist | None:
        """Load the playlist the current track is playing from, if any."""
        return await self.playlist.execute()

    async def skip_next(self) -> None:
        await self.control.execute("next")

    async def skip_previous(self) -> None:
        await self.control.execute("previous")

    def _client(self) -> SpotifyClient | None:
        if not self.session.is_authenticated:
            return None
        return self.session.client

    async def _load_current_playback(self) -> CurrentPlayback | None:
        client = self._client()
        if client is None:
            return None
        return await client.get_currently_playing_track()

    async def _load_playlist(self) -> SpotifyPlaylist | None:
        client = self._client()
        playlist_id = playlist_id_from_context(self.current.context if self.current else None)
        if client is None or playlist_id is None:
            return None
        return await client.get_playlist(playlist_id)

    async def _run_control(self, action: SkipAction) -> None:
        client = self._client()
        if client is None:
            raise PlaybackControlError("Not authenticated")

        device_id = await self._ensure_active_device(client)

        try:
            await self._skip(client, action, device_id)
        except Exception as e:
            if not is_retryable(e):
                raise PlaybackControlError(f"Skip {action} failed: {e}", action=action) from e
            logger.info("Skip %s failed (%s), retrying without device id", action, e)
            try:
                await self._skip(client, action, None)
            except Exception as retry_error:
                raise PlaybackControlError(
                    f"Skip {action} failed after retry: {retry_error}", action=action
                ) from retry_error

        await self.fetch_current_track()

    async def _skip(self, client: SpotifyClient, action: SkipAction, device_id: str | None) -> None:
        if action == "next":
            await client.skip_to_next(device_id)
        else:
            await client.skip_to_previous(device_id)

    async def _ensure_active_device(self, client: SpotifyClient) -> str:
        device = self.device
        if device and device.get("id"):
            return device["id"]

        try:
            devices = await client.get_available_devices()

            for candidate in devices:
                if candidate.get("is_active") and candidate.get("id"):
                    return candidate["id"]

            for candidate in devices:
                if candidate.get("id"):
                    await client.transfer_playback([candidate["id"]], play=True)
                    await asyncio.sleep(self.settle_seconds)
                    return candidate["id"]
        except Exception as e:
            logger.warning("Failed to activate a device: %s", e)

        raise PlaybackControlError(
            "No active Spotify device found. Open Spotify and start playback.",
            reason="NO_ACTIVE_DEVICE",
        )
