"""Client-side session bridge.

Reconciles the authentication status with the cached access token after a
login round trip. The state lives in an explicit ``SessionContext`` owned by
the bridge and handed to consumers by reference.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .async_state import Generation
from .client import SpotifyClient
from .config import OAuthConfig
from .exceptions import SessionCheckError
from .storage import AccessToken, TokenCache

logger = logging.getLogger(__name__)

ClientFactory = Callable[[AccessToken], SpotifyClient]
Authenticator = Callable[[OAuthConfig], Awaitable[AccessToken | None]]


class AuthStatus(str, enum.Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


@dataclass
class SessionContext:
    status: AuthStatus = AuthStatus.IDLE
    client: SpotifyClient | None = None
    error: Exception | None = None
    config: OAuthConfig | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATED and self.client is not None


def _default_client_factory(token: AccessToken) -> SpotifyClient:
    return SpotifyClient(token.access_token)


class SessionBridge:
    def __init__(
        self,
        token_cache: TokenCache,
        client_factory: ClientFactory | None = None,
        authenticator: Authenticator | None = None,
        context: SessionContext | None = None,
    ) -> None:
        self.token_cache = token_cache
        self.client_factory = client_factory or _default_client_factory
        self.authenticator = authenticator
        self.context = context or SessionContext()
        self._signature: str | None = None
        self._checks = Generation()

    async def init(self, config: OAuthConfig | None) -> None:
        if config is None:
            self.context.config = None
            self._signature = None
            self.reset()
            return

        if config.signature() == self._signature and self.context.client is not None:
            self.context.config = config
            return

        self.reset()
        await self.check_existing_session(config)

    async def check_existing_session(self, config: OAuthConfig) -> None:
        self._signature = config.signature()
        self.context.config = config
        request_id = self._checks.next()

        try:
            token = await asyncio.to_thread(self.token_cache.load, True)
            if not self._checks.is_current(request_id):
                logger.debug("Ignoring superseded session check %d", request_id)
                return

            if token is not None and not token.is_expired():
                self._set(AuthStatus.AUTHENTICATED, client=self.client_factory(token))
            else:
                # Missing and expired tokens are both "not signed in"
                self._set(AuthStatus.IDLE)
        except Exception as e:
            if not self._checks.is_current(request_id):
                return
            logger.warning("Session check failed: %s", e)
            error = e if isinstance(e, SessionCheckError) else SessionCheckError(f"Session check failed: {e}")
            self._set(AuthStatus.ERROR, error=error)

    async def authenticate(self) -> None:
        config = self.context.config
        if config is None or self.authenticator is None:
            return

        request_id = self._checks.next()
        self._set(AuthStatus.AUTHENTICATING)

        try:
            token = await self.authenticator(config)
            if not self._checks.is_current(request_id):
                return
            if token is None:
                self._set(AuthStatus.IDLE)
                return
            self.token_cache.save(token)
            self._set(AuthStatus.AUTHENTICATED, client=self.client_factory(token))
        except Exception as e:
            if not self._checks.is_current(request_id):
                return
            logger.warning("Authentication failed: %s", e)
            self._set(AuthStatus.ERROR, error=e)

    async def log_out(self) -> None:
        client = self.context.client
        if client is not None:
            try:
                result = client.log_out()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Upstream logout failed")

        clear_error: SessionCheckError | None = None
        try:
            self.token_cache.clear()
        except OSError as e:
            logger.warning("Failed to clear cached token: %s", e)
            clear_error = SessionCheckError(f"Failed to clear cached token: {e}")

        self.reset()
        self.context.error = clear_error

    def reset(self) -> None:
        self._checks.next()
        self._set(AuthStatus.IDLE)

    def _set(
        self,
        status: AuthStatus,
        client: SpotifyClient | None = None,
        error: Exception | None = None,
    ) -> None:
        self.context.status = status
        self.context.client = client
        self.context.error = error
