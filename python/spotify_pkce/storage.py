"""Client-side token cache - stores the Spotify access token in the user's home directory.

The server never writes here; this is the CLI's counterpart of the
browser's ``localStorage["spotify-token"]``.
"""

from __future__ import annotations

import json
import os
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .constants import TOKEN_STORAGE_KEY
from .exceptions import SessionCheckError


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    refresh_token: str | None = None
    scope: str | None = None
    expires: int | None = None

    def is_expired(self, now: int | None = None) -> bool:
        if self.expires is None:
            return False
        now = _current_time_ms() if now is None else now
        return self.expires <= now

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }
        if self.refresh_token is not None:
            data["refresh_token"] = self.refresh_token
        if self.scope is not None:
            data["scope"] = self.scope
        if self.expires is not None:
            data["expires"] = self.expires
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessToken:
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            expires_in=int(data.get("expires_in", 3600)),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            expires=data.get("expires"),
        )


CONFIG_DIR = Path.home() / ".spotify-pkce"
TOKEN_FILE = CONFIG_DIR / f"{TOKEN_STORAGE_KEY}.json"


class TokenCache:
    def __init__(self, path: Path = TOKEN_FILE) -> None:
        self.path = Path(path)

    def save(self, token: AccessToken) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(token.to_dict(), indent=2))
        if os.name != "nt":
            self.path.chmod(stat.S_IRUSR | stat.S_IWUSR)

    def load(self, strict: bool = False) -> AccessToken | None:
        """Return the cached token, or ``None`` when there is none.

        A corrupt cache file also yields ``None`` unless ``strict`` is set,
        in which case it raises ``SessionCheckError``.
        """
        try:
            if not self.path.exists():
                return None
            return AccessToken.from_dict(json.loads(self.path.read_text()))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OSError) as e:
            if strict:
                raise SessionCheckError(f"Cached token is unreadable: {e}", path=str(self.path)) from e
            return None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def _current_time_ms() -> int:
    return int(time.time() * 1000)
