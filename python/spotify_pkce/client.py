from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypedDict

import httpx

from .constants import SPOTIFY_API_URL
from .exceptions import SpotifyApiError


class SpotifyImage(TypedDict, total=False):
    url: str
    width: int
    height: int


class SpotifyAlbum(TypedDict, total=False):
    name: str
    images: list[SpotifyImage]


class SpotifyArtist(TypedDict, total=False):
    name: str


class SpotifyTrack(TypedDict, total=False):
    id: str
    uri: str
    name: str
    album: SpotifyAlbum
    artists: list[SpotifyArtist]


class SpotifyDevice(TypedDict, total=False):
    id: str
    name: str
    is_active: bool


class PlaybackContext(TypedDict, total=False):
    type: str
    uri: str


@dataclass
class CurrentPlayback:
    track: SpotifyTrack | None
    device: SpotifyDevice | None
    context: PlaybackContext | None = None
    is_playing: bool = False


@dataclass
class PlaylistTrack:
    id: str
    name: str
    artists: list[str]


@dataclass
class SpotifyPlaylist:
    id: str
    name: str
    tracks: list[PlaylistTrack]


DEFAULT_TIMEOUT = 30.0


class SpotifyClient:
    """Minimal async Spotify Web API client bound to one access token."""

    def __init__(
        self,
        access_token: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = SPOTIFY_API_URL,
    ) -> None:
        self.access_token: str | None = access_token
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client

    async def profile(self) -> dict[str, Any]:
        return await self._request("GET", "/me")

    async def get_currently_playing_track(self) -> CurrentPlayback:
        data = await self._request("GET", "/me/player/currently-playing", params={"additional_types": "track"})
        if not data:
            return CurrentPlayback(track=None, device=None)
        item = data.get("item")
        return CurrentPlayback(
            track=item if isinstance(item, dict) else None,
            device=data.get("device"),
            context=data.get("context"),
            is_playing=bool(data.get("is_playing")),
        )

    async def get_available_devices(self) -> list[SpotifyDevice]:
        data = await self._request("GET", "/me/player/devices")
        return list((data or {}).get("devices", []))

    async def transfer_playback(self, device_ids: list[str], play: bool = False) -> None:
        await self._request("PUT", "/me/player", json={"device_ids": device_ids, "play": play})

    async def skip_to_next(self, device_id: str | None = None) -> None:
        await self._request("POST", "/me/player/next", params=_device_params(device_id))

    async def skip_to_previous(self, device_id: str | None = None) -> None:
        await self._request("POST", "/me/player/previous", params=_device_params(device_id))

    async def get_playlist(self, playlist_id: str) -> SpotifyPlaylist:
        data = await self._request("GET", f"/playlists/{playlist_id}")
        tracks: list[PlaylistTrack] = []
        for index, item in enumerate((data.get("tracks") or {}).get("items") or []):
            track = (item or {}).get("track")
            if not track:
                continue
            tracks.append(
                PlaylistTrack(
                    id=track.get("id") or track.get("uri") or f"playlist-track-{index}",
                    name=track.get("name") or "Unknown",
                    artists=[a["name"] for a in track.get("artists") or [] if a.get("name")],
                )
            )
        return SpotifyPlaylist(id=data["id"], name=data["name"], tracks=tracks)

    def log_out(self) -> None:
        self.access_token = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self.access_token:
            raise SpotifyApiError("Client is logged out", status=401)

        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.access_token}"}

        try:
            if self._http_client is None:
                async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
            else:
                response = await self._http_client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise SpotifyApiError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            message, reason = _error_details(response)
            raise SpotifyApiError(
                f"{method} {path} failed: {response.status_code} - {message}",
                status=response.status_code,
                reason=reason,
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Player commands sometimes answer 200 with a non-JSON body
            return None


def _device_params(device_id: str | None) -> dict[str, str]:
    return {"device_id": device_id} if device_id else {}


def _error_details(response: httpx.Response) -> tuple[str, str | None]:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or response.reason_phrase), error.get("reason")
    if isinstance(error, str):
        return str(data.get("error_description") or error), None
    return response.text, None


def album_image(track: SpotifyTrack | None) -> str | None:
    images = ((track or {}).get("album") or {}).get("images") or []
    return images[0]["url"] if images else None


def artist_names(track: SpotifyTrack | None) -> str:
    return ", ".join(a["name"] for a in (track or {}).get("artists") or [] if a.get("name"))


def playlist_id_from_context(context: PlaybackContext | None) -> str | None:
    if context and context.get("type") == "playlist" and isinstance(context.get("uri"), str):
        return context["uri"].split(":")[-1] or None
    return None
