"""
Spotify OAuth constants
Public endpoints and defaults shared by the server, the CLI and the session bridge
"""

# OAuth endpoints
SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"

# Web API
SPOTIFY_API_URL = "https://api.spotify.com/v1"

# Scopes requested when SPOTIFY_SCOPES is not set
DEFAULT_SCOPES = (
    "user-read-email",
    "user-read-currently-playing",
    "user-read-playback-state",
)

# Default port for the local server (redirect URI must match the Spotify dashboard)
DEFAULT_PORT = 8888

# Pending login states expire after 5 minutes
STATE_TTL_MS = 5 * 60 * 1000

# Key used by the browser (localStorage) and the CLI token cache
TOKEN_STORAGE_KEY = "spotify-token"
