"""Client configuration loaded from the environment (and a local .env file)."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .constants import DEFAULT_PORT, DEFAULT_SCOPES
from .exceptions import ConfigurationError

_SCOPE_SEPARATOR = re.compile(r"[\s,]+")


def parse_scopes(raw: str | None) -> tuple[str, ...]:
    if not raw or not raw.strip():
        return DEFAULT_SCOPES

    scopes: dict[str, None] = {}
    for scope in _SCOPE_SEPARATOR.split(raw):
        scope = scope.strip()
        if scope:
            scopes.setdefault(scope, None)
    return tuple(scopes) or DEFAULT_SCOPES


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str
    redirect_uri: str
    scopes: tuple[str, ...] = field(default=DEFAULT_SCOPES)
    client_secret: str | None = None

    def __post_init__(self) -> None:
        # Accept a raw string or any iterable of scopes but store the normalized tuple
        raw = self.scopes if isinstance(self.scopes, str) else " ".join(self.scopes)
        object.__setattr__(self, "scopes", parse_scopes(raw))

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def signature(self) -> str:
        return "|".join([self.client_id, self.redirect_uri, self.scope])

    def validate(self) -> None:
        if not self.client_id:
            raise ConfigurationError("SPOTIFY_CLIENT_ID is not defined")
        if not self.redirect_uri:
            raise ConfigurationError("SPOTIFY_REDIRECT_URI is not defined")


@dataclass(frozen=True)
class ServerSettings:
    oauth: OAuthConfig
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT


def parse_port(raw: str | None) -> int:
    if raw is None or not raw.strip():
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"PORT must be an integer, got {raw!r}") from e
    if not 0 < port < 65536:
        raise ConfigurationError(f"PORT out of range: {port}")
    return port


def load_settings(env: dict[str, str] | None = None, dotenv: bool = True) -> ServerSettings:
    if env is None:
        if dotenv:
            load_dotenv()
        env = dict(os.environ)

    port = parse_port(env.get("PORT"))
    host = env.get("HOST") or "127.0.0.1"
    redirect_uri = env.get("SPOTIFY_REDIRECT_URI") or f"http://127.0.0.1:{port}/callback"

    oauth = OAuthConfig(
        client_id=(env.get("SPOTIFY_CLIENT_ID") or "").strip(),
        client_secret=(env.get("SPOTIFY_CLIENT_SECRET") or "").strip() or None,
        redirect_uri=redirect_uri.strip(),
        scopes=parse_scopes(env.get("SPOTIFY_SCOPES")),
    )
    oauth.validate()
    return ServerSettings(oauth=oauth, host=host, port=port)


def load_config(env: dict[str, str] | None = None, dotenv: bool = True) -> OAuthConfig:
    return load_settings(env, dotenv=dotenv).oauth
