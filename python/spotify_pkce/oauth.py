"""OAuth flow handling for Spotify: authorization URL, state bookkeeping and code exchange."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from .config import OAuthConfig
from .constants import SPOTIFY_AUTHORIZE_URL, SPOTIFY_TOKEN_URL
from .exceptions import ConfigurationError, InvalidStateError, UpstreamExchangeError
from .pkce import generate_pkce, generate_state
from .state_store import OAuthStateStore
from .storage import AccessToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginAttempt:
    auth_url: str
    state: str


def _set_query_params(url: str, params: dict[str, str]) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_authorization_url(
    config: OAuthConfig,
    state: str,
    challenge: str,
    base_url: str = SPOTIFY_AUTHORIZE_URL,
) -> str:
    if not config.client_id:
        raise ConfigurationError("Cannot build authorization URL without a client id")
    if not config.redirect_uri:
        raise ConfigurationError("Cannot build authorization URL without a redirect URI")

    params = {
        "client_id": config.client_id,
        "response_type": "code",
        "redirect_uri": config.redirect_uri,
        "scope": config.scope,
        "code_challenge_method": "S256",
        "code_challenge": challenge,
    }
    auth_url = _set_query_params(base_url, params)
    # state goes last and replaces whatever the base URL carried
    return _set_query_params(auth_url, {"state": state})


def start_login(
    config: OAuthConfig,
    store: OAuthStateStore,
    base_url: str = SPOTIFY_AUTHORIZE_URL,
) -> LoginAttempt:
    pkce = generate_pkce()
    state = generate_state()
    store.save(state, pkce.verifier)

    try:
        auth_url = build_authorization_url(config, state, pkce.challenge, base_url=base_url)
    except Exception:
        store.consume(state)
        raise

    return LoginAttempt(auth_url=auth_url, state=state)


def _upstream_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("error_description") or data.get("error") or response.text)
    return response.text


async def exchange_code_for_token(
    config: OAuthConfig,
    code: str,
    verifier: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    token_url: str = SPOTIFY_TOKEN_URL,
    now: int | None = None,
) -> AccessToken:
    """Trade an authorization code plus its PKCE verifier for an access token.

    Codes and verifiers are single-use, so a rejected exchange is never retried.
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "code_verifier": verifier,
        "redirect_uri": config.redirect_uri,
        "client_id": config.client_id,
    }
    if config.client_secret:
        data["client_secret"] = config.client_secret

    try:
        if http_client is None:
            async with httpx.AsyncClient() as client:
                response = await client.post(token_url, data=data)
        else:
            response = await http_client.post(token_url, data=data)
    except httpx.HTTPError as e:
        raise UpstreamExchangeError(f"Token exchange failed: {e}") from e

    if not response.is_success:
        raise UpstreamExchangeError(
            f"Token exchange failed: {_upstream_message(response)}",
            status=response.status_code,
        )

    try:
        payload: dict[str, Any] = response.json()
        if not isinstance(payload, dict):
            raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
        expires_in = int(payload.get("expires_in", 3600))
        issued_at = _current_time_ms() if now is None else now
        return AccessToken(
            access_token=payload["access_token"],
            token_type=payload.get("token_type", "Bearer"),
            expires_in=expires_in,
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
            expires=issued_at + expires_in * 1000,
        )
    except (ValueError, KeyError, TypeError) as e:
        raise UpstreamExchangeError(
            f"Token exchange returned an invalid response: {e}",
            status=response.status_code,
        ) from e


async def complete_login(
    config: OAuthConfig,
    store: OAuthStateStore,
    code: str,
    state: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    token_url: str = SPOTIFY_TOKEN_URL,
) -> AccessToken:
    entry = store.consume(state)
    if entry is None:
        raise InvalidStateError("Invalid or expired state")

    token = await exchange_code_for_token(
        config, code, entry.verifier, http_client=http_client, token_url=token_url
    )
    logger.info("Authorization code exchanged for access token")
    return token


def parse_callback_url(callback_url: str) -> dict[str, str]:
    query = urlsplit(callback_url.strip()).query
    return dict(parse_qsl(query))


def _current_time_ms() -> int:
    return int(time.time() * 1000)
