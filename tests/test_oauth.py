"""Tests for the authorization URL builder and the code exchange."""

from __future__ import annotations

import asyncio

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from spotify_pkce.config import OAuthConfig
from spotify_pkce.exceptions import ConfigurationError, InvalidStateError, UpstreamExchangeError
from spotify_pkce.oauth import (
    build_authorization_url,
    complete_login,
    exchange_code_for_token,
    parse_callback_url,
    start_login,
)
from spotify_pkce.pkce import generate_code_challenge
from spotify_pkce.state_store import OAuthStateStore


# ── Helpers ──────────────────────────────────────────────────────────


def _config(**overrides) -> OAuthConfig:
    values = {
        "client_id": "client-123",
        "redirect_uri": "http://127.0.0.1:8888/callback",
        "scopes": ("user-read-email", "user-read-playback-state"),
    }
    values.update(overrides)
    return OAuthConfig(**values)


def _query(url: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(url).query)


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _token_handler(captured: list[httpx.Request], status: int = 200, payload: dict | list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        body = payload if payload is not None else {
            "access_token": "at_123",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": "rt_123",
            "scope": "user-read-email",
        }
        return httpx.Response(status, json=body)

    return handler


# ── Authorization URL ────────────────────────────────────────────────


class TestBuildAuthorizationUrl:
    """Tests for build_authorization_url."""

    def test_contains_required_parameters(self) -> None:
        """All PKCE authorization parameters are present."""
        url = build_authorization_url(_config(), "abc123", "challenge-xyz")
        query = _query(url)

        assert url.startswith("https://accounts.spotify.com/authorize?")
        assert query["client_id"] == ["client-123"]
        assert query["response_type"] == ["code"]
        assert query["redirect_uri"] == ["http://127.0.0.1:8888/callback"]
        assert query["scope"] == ["user-read-email user-read-playback-state"]
        assert query["code_challenge_method"] == ["S256"]
        assert query["code_challenge"] == ["challenge-xyz"]
        assert query["state"] == ["abc123"]

    def test_state_overrides_prepopulated_value(self) -> None:
        """A state already present on the base URL is replaced."""
        base = "https://accounts.spotify.com/authorize?state=sdk-generated&show_dialog=true"
        url = build_authorization_url(_config(), "abc123", "c", base_url=base)
        query = _query(url)

        assert query["state"] == ["abc123"]
        assert query["show_dialog"] == ["true"]

    def test_state_is_last_parameter(self) -> None:
        """state is appended after every other parameter."""
        url = build_authorization_url(_config(), "abc123", "c")
        assert urlparse(url).query.split("&")[-1] == "state=abc123"

    @pytest.mark.parametrize("field", ["client_id", "redirect_uri"])
    def test_missing_identifiers_raise(self, field: str) -> None:
        """Empty client id or redirect URI is a configuration error."""
        with pytest.raises(ConfigurationError):
            build_authorization_url(_config(**{field: ""}), "abc123", "c")


class TestStartLogin:
    """Tests for start_login."""

    def test_saves_verifier_matching_challenge(self) -> None:
        """The stored verifier hashes to the challenge in the URL."""
        store = OAuthStateStore()
        attempt = start_login(_config(), store)
        query = _query(attempt.auth_url)

        assert query["state"] == [attempt.state]
        entry = store.consume(attempt.state)
        assert entry is not None
        assert generate_code_challenge(entry.verifier) == query["code_challenge"][0]

    def test_failed_url_build_discards_state(self) -> None:
        """When the URL cannot be built the saved state is consumed."""
        store = OAuthStateStore()
        with pytest.raises(ConfigurationError):
            start_login(_config(redirect_uri=""), store)
        assert len(store) == 0


# ── Token exchange ───────────────────────────────────────────────────


class TestExchangeCodeForToken:
    """Tests for exchange_code_for_token."""

    def test_sends_pkce_form_and_parses_token(self) -> None:
        """The request carries the code, verifier and client data."""
        captured: list[httpx.Request] = []

        async def run():
            async with _mock_client(_token_handler(captured)) as client:
                return await exchange_code_for_token(
                    _config(), "code-1", "verifier-1", http_client=client, now=1_000
                )

        token = asyncio.run(run())

        form = parse_qs(captured[0].content.decode())
        assert captured[0].method == "POST"
        assert str(captured[0].url) == "https://accounts.spotify.com/api/token"
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["code-1"]
        assert form["code_verifier"] == ["verifier-1"]
        assert form["client_id"] == ["client-123"]
        assert form["redirect_uri"] == ["http://127.0.0.1:8888/callback"]
        assert "client_secret" not in form

        assert token.access_token == "at_123"
        assert token.refresh_token == "rt_123"
        assert token.expires == 1_000 + 3_600_000

    def test_client_secret_sent_when_configured(self) -> None:
        """Confidential clients include client_secret."""
        captured: list[httpx.Request] = []

        async def run():
            async with _mock_client(_token_handler(captured)) as client:
                await exchange_code_for_token(
                    _config(client_secret="shh"), "code", "verifier", http_client=client
                )

        asyncio.run(run())
        assert parse_qs(captured[0].content.decode())["client_secret"] == ["shh"]

    def test_rejection_raises_with_upstream_message(self) -> None:
        """A 400 from the token endpoint becomes UpstreamExchangeError."""
        captured: list[httpx.Request] = []
        payload = {"error": "invalid_grant", "error_description": "Invalid authorization code"}

        async def run():
            async with _mock_client(_token_handler(captured, 400, payload)) as client:
                await exchange_code_for_token(_config(), "used", "verifier", http_client=client)

        with pytest.raises(UpstreamExchangeError, match="Invalid authorization code") as exc_info:
            asyncio.run(run())
        assert exc_info.value.status == 400
        assert len(captured) == 1  # not retried

    def test_transport_error_raises(self) -> None:
        """Network failures surface as UpstreamExchangeError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async def run():
            async with _mock_client(handler) as client:
                await exchange_code_for_token(_config(), "code", "verifier", http_client=client)

        with pytest.raises(UpstreamExchangeError, match="connection refused"):
            asyncio.run(run())

    def test_malformed_response_raises(self) -> None:
        """A success response without access_token is rejected."""
        captured: list[httpx.Request] = []

        async def run():
            async with _mock_client(_token_handler(captured, 200, {"token_type": "Bearer"})) as client:
                await exchange_code_for_token(_config(), "code", "verifier", http_client=client)

        with pytest.raises(UpstreamExchangeError):
            asyncio.run(run())

    def test_non_object_response_raises(self) -> None:
        """A success response whose JSON body is not an object is rejected."""
        captured: list[httpx.Request] = []

        async def run():
            async with _mock_client(_token_handler(captured, 200, ["x"])) as client:
                await exchange_code_for_token(_config(), "code", "verifier", http_client=client)

        with pytest.raises(UpstreamExchangeError, match="expected a JSON object"):
            asyncio.run(run())


class TestCompleteLogin:
    """Tests for complete_login."""

    def test_consumes_state_and_exchanges(self) -> None:
        """The verifier saved for the state is sent to the token endpoint."""
        captured: list[httpx.Request] = []
        store = OAuthStateStore()
        store.save("s1", "v1")

        async def run():
            async with _mock_client(_token_handler(captured)) as client:
                return await complete_login(_config(), store, "code", "s1", http_client=client)

        token = asyncio.run(run())

        assert token.access_token == "at_123"
        assert parse_qs(captured[0].content.decode())["code_verifier"] == ["v1"]
        assert store.consume("s1") is None

    def test_unknown_state_raises_without_exchange(self) -> None:
        """An unknown state never reaches the token endpoint."""
        captured: list[httpx.Request] = []

        async def run():
            async with _mock_client(_token_handler(captured)) as client:
                await complete_login(_config(), OAuthStateStore(), "code", "nope", http_client=client)

        with pytest.raises(InvalidStateError, match="Invalid or expired state"):
            asyncio.run(run())
        assert captured == []


class TestParseCallbackUrl:
    """Tests for parse_callback_url."""

    def test_extracts_query_parameters(self) -> None:
        """code and state are read from a pasted redirect URL."""
        params = parse_callback_url("  http://127.0.0.1:8888/callback?code=abc&state=xyz\n")
        assert params == {"code": "abc", "state": "xyz"}
