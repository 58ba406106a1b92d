"""
auth/sessions.py -- Session cookie handling and request identity extraction.

The access token travels two ways:
  1. HttpOnly session cookie -- set by /auth/login and /auth/refresh for
     browser clients. Checked first.
  2. Authorization: Bearer <token> -- for scripts and non-browser clients.

Cookie attributes depend on APP_ENV:
  production:   Secure, SameSite=None (admin UI is served cross-site)
  anything else: not Secure, SameSite=Lax (plain-HTTP localhost)
Both: HttpOnly, Path=/, Max-Age=SESSION_COOKIE_TTL.

get_client_ip() is the rate limiter key. It trusts proxy headers, so the API
must sit behind a proxy that overwrites them.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

from fastapi import Request, Response

from core.config import get_settings
from core.errors import UnauthorizedError

_settings = get_settings()

_FALLBACK_IP = "127.0.0.1"


def _cookie_attributes() -> dict:
    if _settings.is_production:
        return {"httponly": True, "secure": True, "samesite": "none", "path": "/"}
    return {"httponly": True, "secure": False, "samesite": "lax", "path": "/"}


def build_session_cookie(response: Response, token: str) -> None:
    """Attach the access token to the response as the session cookie."""
    response.set_cookie(
        _settings.session_cookie_name,
        value=token,
        max_age=_settings.session_cookie_ttl,
        **_cookie_attributes(),
    )


def clear_session_cookie(response: Response) -> None:
    """Expire the session cookie (empty value, Max-Age=0, same attributes)."""
    response.set_cookie(
        _settings.session_cookie_name,
        value="",
        max_age=0,
        **_cookie_attributes(),
    )


def extract_token(request: Request) -> str:
    """Return the access token from the session cookie, else the Bearer header.

    The cookie wins when both are present. Raises UnauthorizedError when
    neither carries a token.
    """
    token = request.cookies.get(_settings.session_cookie_name)
    if token:
        return token

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        bearer = auth_header[7:].strip()
        if bearer:
            return bearer

    raise UnauthorizedError("Missing or invalid authorization header")


def get_client_ip(request: Request) -> str:
    """Best-effort client IP: X-Forwarded-For (first hop), X-Real-IP, X-Client-IP, peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "x-client-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return _FALLBACK_IP
