"""
csrf.py — Double-submit CSRF protection
=======================================
The session holds a long-lived secret; every safe request derives a fresh
token from it which the client echoes back on state-changing requests via
the ``_csrf`` form field or the ``X-CSRF-Token`` / ``CSRF-Token`` header.

Token format:  ``<salt>-<base64url(sha1(salt + "-" + secret))>``

A token verifies only against the secret it was derived from, so tokens do
not carry across sessions and stop working once the secret is rotated.
"""
from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from typing import Optional

from fastapi import Request

from .errors import CsrfTokenInvalid, CsrfTokenMissing

log = logging.getLogger("community.csrf")

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
TOKEN_FIELD = "_csrf"
TOKEN_HEADERS = ("x-csrf-token", "csrf-token")

_SECRET_BYTES = 18
_SALT_LENGTH = 8
_SALT_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def create_secret() -> str:
    return _b64url(secrets.token_bytes(_SECRET_BYTES))


def _digest(salt: str, secret: str) -> str:
    return _b64url(hashlib.sha1(f"{salt}-{secret}".encode()).digest())


def create_token(secret: str) -> str:
    salt = "".join(secrets.choice(_SALT_ALPHABET) for _ in range(_SALT_LENGTH))
    return f"{salt}-{_digest(salt, secret)}"


def verify_token(secret: Optional[str], token: Optional[str]) -> bool:
    if not secret or not isinstance(token, str):
        return False
    salt, sep, _ = token.partition("-")
    if not sep or not salt:
        return False
    expected = f"{salt}-{_digest(salt, secret)}"
    return secrets.compare_digest(expected.encode(), token.encode())


# ---------------------------------------------------------------------------
# Route exemption
# ---------------------------------------------------------------------------

def csrf_exempt(endpoint):
    """Mark a route handler as exempt from CSRF verification.

    Applied at route registration only; nothing on the request can set it.
    """
    endpoint.csrf_exempt = True
    return endpoint


def _is_exempt(request: Request) -> bool:
    endpoint = request.scope.get("endpoint")
    return bool(getattr(endpoint, "csrf_exempt", False))


# ---------------------------------------------------------------------------
# Pipeline stage
# ---------------------------------------------------------------------------

def _supplied_token(request: Request) -> Optional[str]:
    payload = getattr(request.state, "payload", None) or {}
    token = payload.get(TOKEN_FIELD)
    if isinstance(token, str) and token:
        return token
    for header in TOKEN_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


def issue_token(request: Request) -> str:
    """Ensure the session has a secret and expose a fresh token on the request."""
    session = request.state.session
    if not session.csrf_secret:
        session.csrf_secret = create_secret()
    token = create_token(session.csrf_secret)
    request.state.csrf_token = token
    return token


def csrf_protect(request: Request) -> None:
    """App-level dependency: verify unsafe requests, issue tokens on safe ones."""
    session = request.state.session
    if request.method in SAFE_METHODS:
        issue_token(request)
        return
    if _is_exempt(request):
        return

    token = _supplied_token(request)
    if not session.csrf_secret or not token:
        log.warning("CSRF token missing on %s %s", request.method, request.url.path)
        raise CsrfTokenMissing()
    if not verify_token(session.csrf_secret, token):
        log.warning("Invalid CSRF token on %s %s", request.method, request.url.path)
        raise CsrfTokenInvalid()
    # Re-expose a token so handlers that re-render forms can embed it
    request.state.csrf_token = create_token(session.csrf_secret)
