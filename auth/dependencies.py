"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and RBAC.

Identity resolution order (auth/sessions.extract_token):
  1. Session cookie -- set by /auth/login and /auth/refresh.
  2. Authorization: Bearer <token> header -- scripts and API clients.

The token is verified, then the user is re-read from the store so a deleted
account stops working immediately even while its JWT is still unexpired.

get_current_user() raises UnauthorizedError / TokenExpiredError / InvalidTokenError.
require_permission(*keys) and require_role(*names) build dependencies that
additionally raise PermissionDeniedError.

All errors are core.errors.AppError subclasses; api/main.py renders them.

Layer rule: no imports from api/ or content/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request

from auth import rbac
from auth.models import User
from auth.sessions import extract_token
from auth.store import UserStore
from auth.tokens import decode_access_token
from core.errors import PermissionDeniedError, UnauthorizedError

logger = logging.getLogger("portfolio.auth")


def get_current_user(request: Request) -> User:
    """Require authentication. Raises a 401 AppError if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user_store: UserStore = request.app.state.user_store
    token = extract_token(request)
    payload = decode_access_token(token)
    user = user_store.get_by_id(payload["sub"])
    if user is None:
        raise UnauthorizedError("User not found")
    return user


def require_permission(*keys: str) -> Callable[..., User]:
    """Build a dependency that requires ANY of *keys* (ADMIN bypass applies).

    Use as:
        @router.post("/admin/projects")
        def create(user: User = Depends(require_permission("project:create"))): ...
    """

    def _dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        user_store: UserStore = request.app.state.user_store
        if not rbac.has_permission(user_store, user.id, keys):
            logger.warning("Permission denied: user_id=%s needs any of %s", user.id, ", ".join(keys))
            raise PermissionDeniedError()
        return user

    return _dependency


def require_role(*names: str) -> Callable[..., User]:
    """Build a dependency that requires ANY of the named roles."""

    def _dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        user_store: UserStore = request.app.state.user_store
        if not rbac.has_role(user_store, user.id, names):
            logger.warning("Role denied: user_id=%s needs any of %s", user.id, ", ".join(names))
            raise PermissionDeniedError("Insufficient role")
        return user

    return _dependency
