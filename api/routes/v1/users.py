"""
api/routes/v1/users.py -- Admin user and role management endpoints.

Routes:
  GET    /api/v1/admin/users                          -- paginated users with roles [users:read]
  POST   /api/v1/admin/users/{user_id}/roles          -- assign role {roleName}    [role:assign]
  DELETE /api/v1/admin/users/{user_id}/roles/{role}   -- revoke role               [role:revoke]

Guards:
  - USER is the baseline role every account carries; it cannot be revoked (403).
  - The last ADMIN holder cannot lose ADMIN (400 LAST_ADMIN); otherwise there
    is no recovery path short of the bootstrap CLI.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request

from api.models import Envelope, Pagination, RoleAssignRequest, UserListOut, UserOut
from api.pagination import clamp_page_size, total_pages
from auth import rbac
from auth.dependencies import require_permission
from auth.models import User
from auth.store import UserStore
from core.errors import BadRequestError, ForbiddenError, NotFoundError

logger = logging.getLogger("portfolio.api")

router = APIRouter()


def _get_user_or_404(user_store: UserStore, user_id: int) -> User:
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User")
    return user


@router.get("/admin/users", response_model=Envelope[UserListOut])
def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    current_user: User = Depends(require_permission("users:read")),
) -> Envelope[UserListOut]:
    """List user accounts with their role names, oldest first."""
    user_store: UserStore = request.app.state.user_store
    limit = clamp_page_size(limit)
    users, total = user_store.list_users(offset=(page - 1) * limit, limit=limit)
    return Envelope[UserListOut](
        data=UserListOut(
            users=[UserOut.from_user(u) for u in users],
            pagination=Pagination(page=page, limit=limit, total=total, pages=total_pages(total, limit)),
        )
    )


@router.post("/admin/users/{user_id}/roles", response_model=Envelope[UserOut])
def assign_role(
    request: Request,
    user_id: int,
    body: RoleAssignRequest,
    current_user: User = Depends(require_permission("role:assign")),
) -> Envelope[UserOut]:
    """Assign a role to a user. Idempotent; assigning ADMIN re-syncs admin grants."""
    user_store: UserStore = request.app.state.user_store
    _get_user_or_404(user_store, user_id)
    rbac.assign_role(user_store, user_id, body.role_name)
    logger.info("user_id=%s assigned %s to user_id=%s", current_user.id, body.role_name, user_id)
    return Envelope[UserOut](data=UserOut.from_user(rbac.get_user_with_roles(user_store, user_id)))


@router.delete("/admin/users/{user_id}/roles/{role_name}", response_model=Envelope[UserOut])
def revoke_role(
    request: Request,
    user_id: int,
    role_name: str,
    current_user: User = Depends(require_permission("role:revoke")),
) -> Envelope[UserOut]:
    """Revoke a role from a user."""
    user_store: UserStore = request.app.state.user_store
    _get_user_or_404(user_store, user_id)

    if role_name == rbac.USER_ROLE:
        raise ForbiddenError("Cannot remove default USER role")
    if role_name == rbac.ADMIN_ROLE and rbac.is_admin(user_store, user_id):
        if user_store.count_users_with_role(rbac.ADMIN_ROLE) <= 1:
            raise BadRequestError("Cannot remove the last ADMIN", code="LAST_ADMIN")

    if not rbac.revoke_role(user_store, user_id, role_name):
        raise NotFoundError("Role assignment")
    logger.info("user_id=%s revoked %s from user_id=%s", current_user.id, role_name, user_id)
    return Envelope[UserOut](data=UserOut.from_user(rbac.get_user_with_roles(user_store, user_id)))
