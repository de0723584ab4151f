"""PKCE (Proof Key for Code Exchange) utilities and CSRF state tokens for the authorization code flow."""

import base64
import hashlib
import secrets
from dataclasses import dataclass


@dataclass(frozen=True)
class PKCEPair:
    verifier: str
    challenge: str


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    return _base64url(secrets.token_bytes(64))


def generate_code_challenge(verifier: str) -> str:
    return _base64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce() -> PKCEPair:
    verifier = generate_code_verifier()
    challenge = generate_code_challenge(verifier)
    return PKCEPair(verifier=verifier, challenge=challenge)


def generate_state(length: int = 16) -> str:
    # 16 bytes = 128 bits, hex encoded
    return secrets.token_hex(length)
