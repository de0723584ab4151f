"""FastAPI app for the server-side PKCE login.

``/login`` starts a flow and redirects to Spotify, ``/callback`` validates the
returned state and exchanges the code, ``/`` shows the cached session. The
access token is handed to the browser; nothing is persisted server-side.
"""

from __future__ import annotations

import base64
import json
import logging

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from .config import OAuthConfig
from .constants import SPOTIFY_API_URL, SPOTIFY_AUTHORIZE_URL, SPOTIFY_TOKEN_URL, TOKEN_STORAGE_KEY
from .exceptions import InvalidStateError, UpstreamExchangeError
from .oauth import complete_login, start_login
from .state_store import OAuthStateStore

logger = logging.getLogger(__name__)


HOME_PAGE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <title>Spotify OAuth Demo</title>
    <style>
      body {{ font-family: sans-serif; margin: 2rem; }}
      pre {{ background: #f4f4f4; padding: 1rem; border-radius: 0.5rem; }}
    </style>
  </head>
  <body>
    <h1>Spotify OAuth Demo</h1>
    <p><a id="login-link" href="/login">Log in with Spotify</a></p>
    <section>
      <h2>Status</h2>
      <div id="status">Checking localStorage for token...</div>
    </section>
    <section>
      <h2>Current User Profile</h2>
      <pre id="profile">Sign in to load profile information.</pre>
    </section>
    <script type="module">
      const config = {config};
      const statusEl = document.getElementById("status");
      const profileEl = document.getElementById("profile");
      const loginLink = document.getElementById("login-link");
      const stored = localStorage.getItem({storage_key});

      if (!stored) {{
        statusEl.textContent = "No token found. Use the login link above.";
      }} else {{
        try {{
          const token = JSON.parse(stored);
          if (typeof token.expires === "number" && token.expires <= Date.now()) {{
            throw new Error("Token expired");
          }}
          const response = await fetch(`${{config.apiUrl}}/me`, {{
            headers: {{ Authorization: `Bearer ${{token.access_token}}` }},
          }});
          if (!response.ok) {{
            throw new Error(`Profile request failed: ${{response.status}}`);
          }}
          profileEl.textContent = JSON.stringify(await response.json(), null, 2);
          statusEl.textContent = "Authenticated using stored token.";
          loginLink.textContent = "Re-authenticate with Spotify";
        }} catch (error) {{
          console.error(error);
          statusEl.textContent = "Stored token is invalid or expired. Please log in again.";
          localStorage.removeItem({storage_key});
        }}
      }}
    </script>
  </body>
</html>"""

CALLBACK_PAGE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <title>Spotify OAuth Callback</title>
  </head>
  <body>
    <p>Completing authentication...</p>
    <script>
      localStorage.setItem({storage_key}, atob("{encoded_token}"));
      window.location.replace("/");
    </script>
  </body>
</html>"""


def _public_config(config: OAuthConfig) -> dict[str, object]:
    return {
        "clientId": config.client_id,
        "redirectUri": config.redirect_uri,
        "scopes": list(config.scopes),
        "apiUrl": SPOTIFY_API_URL,
    }


def _wants_json(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return "application/json" in accept and "text/html" not in accept


def create_app(
    config: OAuthConfig,
    state_store: OAuthStateStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    authorize_url: str = SPOTIFY_AUTHORIZE_URL,
    token_url: str = SPOTIFY_TOKEN_URL,
) -> FastAPI:
    config.validate()
    store = state_store or OAuthStateStore()

    app = FastAPI(title="Spotify PKCE Demo")

    @app.get("/", response_class=HTMLResponse)
    async def home() -> Response:
        html = HOME_PAGE.format(
            config=json.dumps(_public_config(config)),
            storage_key=json.dumps(TOKEN_STORAGE_KEY),
        )
        return HTMLResponse(html)

    @app.get("/login")
    async def login() -> Response:
        try:
            attempt = start_login(config, store, base_url=authorize_url)
        except Exception:
            logger.exception("Failed to create authorization URL")
            return JSONResponse(status_code=500, content={"error": "Failed to create authorization URL"})

        logger.info("Redirecting to Spotify authorization (%d pending)", len(store))
        return RedirectResponse(attempt.auth_url, status_code=302)

    @app.get("/callback")
    async def callback(
        request: Request,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
    ) -> Response:
        if error is not None:
            logger.warning("Authorization denied by provider: %s", error)
            return JSONResponse(status_code=400, content={"error": error})

        if not code or not state:
            return JSONResponse(status_code=400, content={"error": "Missing authorization code or state"})

        try:
            token = await complete_login(
                config, store, code, state, http_client=http_client, token_url=token_url
            )
        except InvalidStateError as e:
            logger.warning("Rejected callback: %s", e.message)
            return JSONResponse(status_code=400, content={"error": e.message})
        except UpstreamExchangeError as e:
            logger.error("Token exchange failed: %s", e.message)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to exchange authorization code", "message": e.message},
            )

        if _wants_json(request):
            return JSONResponse(content=token.to_dict())

        encoded = base64.b64encode(json.dumps(token.to_dict()).encode("utf-8")).decode("ascii")
        return HTMLResponse(
            CALLBACK_PAGE.format(storage_key=json.dumps(TOKEN_STORAGE_KEY), encoded_token=encoded)
        )

    app.state.oauth_config = config
    return app
