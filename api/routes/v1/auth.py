"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST   /api/v1/auth/register         -- create account, auto-assign USER; 201
  POST   /api/v1/auth/login            -- email-or-username login; sets session cookie
  POST   /api/v1/auth/refresh          -- rotate refresh token; sets session cookie
  POST   /api/v1/auth/logout           -- revoke refresh token (if sent), clear cookie; 204
  DELETE /api/v1/auth/logout           -- same as POST
  GET    /api/v1/auth/me               -- current user + roles (requires auth)
  PUT    /api/v1/auth/change-password  -- new password, revoke all refresh tokens (requires auth)

Security:
  [H2] /login and /refresh are rate-limited per client IP, each with its own
       fixed window (LOGIN_RATE_LIMIT, REFRESH_RATE_LIMIT).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries tokens.

This module deliberately omits `from __future__ import annotations`: slowapi
wraps the rate-limited handlers, and FastAPI resolves string annotations
against the wrapper's globals, not this module's.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import LOGIN_LIMIT, LOGIN_LIMIT_MESSAGE, REFRESH_LIMIT, REFRESH_LIMIT_MESSAGE, limiter
from api.models import (
    ChangePasswordRequest,
    Envelope,
    LoginRequest,
    LogoutRequest,
    MessageOut,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UserOut,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.rbac import USER_ROLE
from auth.sessions import build_session_cookie, clear_session_cookie, get_client_ip
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    hash_password,
    issue_refresh_token,
    revoke_refresh_token,
    rotate_refresh_token,
    verify_password,
)
from core.errors import InvalidCredentialsError, UserExistsError

logger = logging.getLogger("portfolio.auth")

# Auth policy:
# - POST   /auth/register, /auth/login, /auth/refresh:  public
# - POST   /auth/logout, DELETE /auth/logout:           public -- clearing a cookie needs no prior auth
# - GET    /auth/me, PUT /auth/change-password:         requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(user: User, refresh_token: str) -> JSONResponse:
    """Build the login/refresh response: token pair in the body, access token in the cookie."""
    access_token = create_access_token(user.id, user.username, user.email)
    payload = Envelope[TokenPair](
        data=TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            user=UserOut(id=user.id, email=user.email, username=user.username),
        )
    )
    resp = JSONResponse(status_code=200, content=payload.model_dump(mode="json", by_alias=True))
    build_session_cookie(resp, access_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=Envelope[UserOut], status_code=201)
def register(request: Request, body: RegisterRequest) -> Envelope[UserOut]:
    """Create a local account. The USER role is attached in the same transaction."""
    user_store: UserStore = request.app.state.user_store

    if user_store.get_by_email(body.email) is not None:
        raise UserExistsError("email")
    if user_store.get_by_username(body.username) is not None:
        raise UserExistsError("username")

    try:
        user_id = user_store.create_user(
            User(email=body.email, username=body.username, password_hash=hash_password(body.password)),
            roles=[USER_ROLE],
        )
    except IntegrityError as exc:
        # Lost a race with a concurrent registration for the same identity.
        raise UserExistsError("email or username") from exc

    logger.info("User registered: user_id=%s", user_id)
    created = user_store.get_user_with_roles(user_id)
    return Envelope[UserOut](data=UserOut.from_user(created))


# Route decorator first, limiter second: slowapi must wrap the function that
# FastAPI registers, otherwise the per-route limit never runs.
@router.post("/auth/login", response_model=Envelope[TokenPair])
@limiter.limit(LOGIN_LIMIT, error_message=LOGIN_LIMIT_MESSAGE)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email or username and password; set the session cookie.

    Uses authenticate_user() which includes timing equalization [C1]. Wrong
    identifier and wrong password produce the same INVALID_CREDENTIALS error.
    """
    user_store: UserStore = request.app.state.user_store
    try:
        user = authenticate_user(user_store, body.email_or_username, body.password)
    except InvalidCredentialsError:
        logger.warning("Failed login from %s", get_client_ip(request))
        raise

    refresh_token = issue_refresh_token(user_store, user.id)
    logger.info("Login: user_id=%s", user.id)
    return _token_response(user, refresh_token)


@router.post("/auth/refresh", response_model=Envelope[TokenPair])
@limiter.limit(REFRESH_LIMIT, error_message=REFRESH_LIMIT_MESSAGE)  # [H2]
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new access token and a new refresh token.

    The presented token is revoked and exactly one successor is issued, in one
    transaction. Revoked and expired tokens never yield an access token.
    """
    user_store: UserStore = request.app.state.user_store
    user, new_refresh_token = rotate_refresh_token(user_store, body.refresh_token)
    return _token_response(user, new_refresh_token)


@router.api_route("/auth/logout", methods=["POST", "DELETE"], status_code=204)
def logout(request: Request, body: Optional[LogoutRequest] = None) -> Response:
    """Clear the session cookie and, if a refresh token is supplied, revoke it.

    Always 204: logging out twice, or with an unknown token, is not an error.
    """
    if body is not None and body.refresh_token:
        user_store: UserStore = request.app.state.user_store
        revoke_refresh_token(user_store, body.refresh_token)
    resp = Response(status_code=204)
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=Envelope[UserOut])
def me(request: Request, current_user: User = Depends(get_current_user)) -> Envelope[UserOut]:
    """Return identity information for the currently authenticated user."""
    user_store: UserStore = request.app.state.user_store
    current_user.roles = user_store.get_user_role_names(current_user.id)
    return Envelope[UserOut](data=UserOut.from_user(current_user))


@router.put("/auth/change-password", response_model=Envelope[MessageOut])
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> Envelope[MessageOut]:
    """Replace the password after re-verifying the current one.

    Every refresh token the user holds is revoked in the same transaction, so
    other sessions end when their access tokens expire.
    """
    if not verify_password(body.current_password, current_user.password_hash):
        raise InvalidCredentialsError("Current password is incorrect")

    user_store: UserStore = request.app.state.user_store
    user_store.update_password(current_user.id, hash_password(body.new_password))
    logger.info("Password changed: user_id=%s", current_user.id)
    return Envelope[MessageOut](data=MessageOut(message="Password updated successfully"))
