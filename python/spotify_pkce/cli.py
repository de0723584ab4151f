#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import logging
import platform
import subprocess
import sys
from datetime import datetime

from .config import OAuthConfig, load_settings
from .exceptions import ConfigurationError, SpotifyApiError
from .log import configure
from .oauth import complete_login, parse_callback_url, start_login
from .playback import PlaybackController
from .session import AuthStatus, SessionBridge
from .state_store import OAuthStateStore
from .storage import AccessToken, TokenCache

PLAYLIST_PREVIEW = 5


def open_browser(url: str) -> None:
    system = platform.system().lower()
    if system == "darwin":
        subprocess.Popen(["open", url], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    elif system == "windows":
        subprocess.Popen(["start", url], shell=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    else:
        subprocess.Popen(["xdg-open", url], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)


async def paste_authenticator(config: OAuthConfig) -> AccessToken | None:
    store = OAuthStateStore()
    attempt = start_login(config, store)

    print("Opening browser...\n")
    open_browser(attempt.auth_url)

    print("If browser did not open, visit this URL:\n")
    print(attempt.auth_url)
    print(f"\nAfter authorizing, Spotify redirects to {config.redirect_uri}?code=...&state=...")
    print("Copy the full address from the browser bar.\n")

    callback_url = await asyncio.to_thread(input, "Paste the redirected URL here: ")
    params = parse_callback_url(callback_url)

    if "error" in params:
        print(f"\033[31mAuthorization denied: {params['error']}\033[0m")
        return None
    if not params.get("code") or not params.get("state"):
        print("\033[31mMissing authorization code or state\033[0m")
        return None

    return await complete_login(config, store, params["code"], params["state"])


def _bridge(cache: TokenCache) -> SessionBridge:
    return SessionBridge(cache, authenticator=paste_authenticator)


def _expiry(token: AccessToken | None) -> str:
    if token is None or token.expires is None:
        return "never"
    return str(datetime.fromtimestamp(token.expires / 1000))


async def cmd_login(config: OAuthConfig, cache: TokenCache) -> int:
    bridge = _bridge(cache)
    await bridge.init(config)
    if bridge.context.status is AuthStatus.AUTHENTICATED:
        print("Already authenticated. Run \"logout\" first to switch accounts.")
        return 0

    print("Starting OAuth flow...\n")
    await bridge.authenticate()

    if bridge.context.status is AuthStatus.AUTHENTICATED:
        print("\nSuccess! You are now authenticated.")
        print(f"Token cached at: {cache.path}")
        print(f"Token expires: {_expiry(cache.load())}")
        return 0

    print(f"\nAuthentication failed: {bridge.context.error or 'no token received'}")
    return 1


async def cmd_logout(config: OAuthConfig, cache: TokenCache) -> int:
    bridge = _bridge(cache)
    await bridge.init(config)
    await bridge.log_out()
    if bridge.context.error:
        print(f"\033[31m{bridge.context.error}\033[0m")
        return 1
    print("Token cleared.")
    return 0


async def cmd_status(config: OAuthConfig, cache: TokenCache) -> int:
    bridge = _bridge(cache)
    await bridge.init(config)
    context = bridge.context

    if context.status is AuthStatus.ERROR:
        print(f"\033[31mSession check failed: {context.error}\033[0m")
        return 1
    if context.status is not AuthStatus.AUTHENTICATED:
        print('Not authenticated. Run "login" to authenticate.')
        return 0

    try:
        profile = await context.client.profile()
    except SpotifyApiError as e:
        print(f"\033[31mStored token was rejected: {e}\033[0m")
        return 1

    print("Authenticated")
    print(f"User: {profile.get('display_name') or profile.get('id')}")
    print(f"Token expires: {_expiry(cache.load())}")
    return 0


async def cmd_playback(config: OAuthConfig, cache: TokenCache, action: str | None) -> int:
    bridge = _bridge(cache)
    await bridge.init(config)
    if bridge.context.status is not AuthStatus.AUTHENTICATED:
        print('Not authenticated. Run "login" first.')
        return 1

    controller = PlaybackController(bridge.context)
    await controller.fetch_current_track()

    if action == "next":
        await controller.skip_next()
    elif action == "previous":
        await controller.skip_previous()

    if controller.control.error:
        print(f"\033[31m{controller.control.error}\033[0m")
        return 1
    if controller.playback.error:
        print(f"\033[31m{controller.playback.error}\033[0m")
        return 1

    print(f"\033[36m{controller.track_title}\033[0m")
    print(controller.track_subtitle)
    device = controller.device
    if device and device.get("id"):
        print(f"\033[90mDevice: {device.get('name') or device['id']}\033[0m")
    else:
        print("\033[33mNo active Spotify device detected\033[0m")

    playlist = await controller.fetch_playlist()
    if controller.playlist.error:
        print(f"\033[33mCould not load playlist: {controller.playlist.error}\033[0m")
    elif playlist is not None:
        print(f"\nPlaylist: {playlist.name} ({len(playlist.tracks)} tracks)")
        for index, track in enumerate(playlist.tracks[:PLAYLIST_PREVIEW], start=1):
            print(f"  {index}. {track.name} - {', '.join(track.artists) or 'Unknown artist'}")
    return 0


def cmd_serve(host: str, port: int, config: OAuthConfig) -> int:
    import uvicorn

    from .server import create_app

    print(f"Spotify OAuth server listening on http://{host}:{port}")
    print(f"Using redirect URI: {config.redirect_uri}")
    print("Make sure this redirect URI is added to your Spotify app at https://developer.spotify.com/dashboard")
    uvicorn.run(create_app(config), host=host, port=port)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Spotify Authorization Code with PKCE demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  spotify-pkce serve
  spotify-pkce login
  spotify-pkce status
  spotify-pkce now-playing
  spotify-pkce next
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the /login and /callback server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: HOST or 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: PORT or 8888)")

    subparsers.add_parser("login", help="Authenticate from the terminal")
    subparsers.add_parser("logout", help="Clear the cached token")
    subparsers.add_parser("status", help="Check authentication status")
    subparsers.add_parser("now-playing", help="Show the currently playing track")
    subparsers.add_parser("next", help="Skip to the next track")
    subparsers.add_parser("previous", help="Skip to the previous track")

    args = parser.parse_args()
    configure(logging.DEBUG if args.verbose else logging.WARNING)

    if args.command is None:
        parser.print_help()
        return

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"\033[31mConfiguration error: {e}\033[0m")
        sys.exit(2)

    config = settings.oauth
    cache = TokenCache()

    if args.command == "serve":
        code = cmd_serve(args.host or settings.host, args.port or settings.port, config)
    elif args.command == "login":
        code = asyncio.run(cmd_login(config, cache))
    elif args.command == "logout":
        code = asyncio.run(cmd_logout(config, cache))
    elif args.command == "status":
        code = asyncio.run(cmd_status(config, cache))
    elif args.command == "now-playing":
        code = asyncio.run(cmd_playback(config, cache, None))
    else:
        code = asyncio.run(cmd_playback(config, cache, args.command))

    sys.exit(code)


if __name__ == "__main__":
    main()
