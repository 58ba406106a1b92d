"""
auth/rbac.py -- Role-based access control resolution.

Model:
  users --< user_roles >-- roles --< role_permissions >-- permissions

Rules:
  - A user holding ADMIN passes every permission check, whether or not the
    grant rows exist (admin bypass).
  - ensure_admin_owns_all_permissions() keeps the ADMIN role's grant rows in
    sync with the permissions table anyway, so listings and audits reflect
    reality. It is idempotent and never removes a grant.
  - Assigning ADMIN to anyone triggers that sync.

All functions take the UserStore explicitly; there is no module-level store.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

import logging

from auth.models import Role, User
from auth.store import UserStore
from core.errors import NotFoundError

logger = logging.getLogger("portfolio.rbac")

ADMIN_ROLE = "ADMIN"
USER_ROLE = "USER"

# Default permission catalogue seeded at startup and by `main.py seed`.
DEFAULT_PERMISSIONS: dict[str, str] = {
    "user:read": "Read own user information",
    "users:read": "List all user accounts",
    "user:write": "Modify users",
    "role:read": "View roles",
    "role:assign": "Assign roles to users",
    "role:revoke": "Revoke roles from users",
    "about:read": "View about entries in admin",
    "about:write": "Create and update about entries",
    "about:publish": "Publish about entries",
    "about:delete": "Delete about entries",
    "project:read": "View projects in admin",
    "project:create": "Create projects",
    "project:update": "Update and reorder projects",
    "project:delete": "Delete projects",
    "project:publish": "Publish projects",
    "experience:read": "View experiences in admin",
    "experience:create": "Create experiences",
    "experience:update": "Update experiences",
    "experience:delete": "Delete experiences",
    "experience:publish": "Publish experiences",
}

DEFAULT_ROLES: dict[str, str] = {
    ADMIN_ROLE: "Administrator role with all permissions",
    USER_ROLE: "Default role for registered users",
}

# Grants for non-admin default roles. ADMIN is handled by the sync.
DEFAULT_ROLE_GRANTS: dict[str, list[str]] = {
    USER_ROLE: ["user:read"],
}


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def is_admin(store: UserStore, user_id: int) -> bool:
    return ADMIN_ROLE in store.get_user_role_names(user_id)


def user_has_permission(store: UserStore, user_id: int, key: str) -> bool:
    """True if the user holds ADMIN or any role granting *key*."""
    if is_admin(store, user_id):
        return True
    return key in store.get_user_permission_keys(user_id)


def has_permission(store: UserStore, user_id: int, keys: list[str] | tuple[str, ...]) -> bool:
    """True if the user holds ANY of the given permission keys (ADMIN bypass applies)."""
    if is_admin(store, user_id):
        return True
    granted = set(store.get_user_permission_keys(user_id))
    return any(key in granted for key in keys)


def has_role(store: UserStore, user_id: int, names: list[str] | tuple[str, ...]) -> bool:
    """True if the user holds ANY of the given roles."""
    held = set(store.get_user_role_names(user_id))
    return any(name in held for name in names)


def get_user_roles(store: UserStore, user_id: int) -> list[str]:
    return store.get_user_role_names(user_id)


def get_user_permissions(store: UserStore, user_id: int) -> list[str]:
    """Effective permission keys. ADMIN holders get every key that exists."""
    if is_admin(store, user_id):
        return store.list_permission_keys()
    return store.get_user_permission_keys(user_id)


def get_user_with_roles(store: UserStore, user_id: int) -> User:
    user = store.get_user_with_roles(user_id)
    if user is None:
        raise NotFoundError("User")
    return user


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def ensure_admin_owns_all_permissions(store: UserStore) -> int:
    """Upsert the ADMIN role and attach every permission it lacks.

    Returns the number of grants added (0 on a re-run). Existing grants are
    never removed, so running this any number of times is safe.
    """
    admin = store.upsert_role(ADMIN_ROLE, DEFAULT_ROLES[ADMIN_ROLE])
    added = store.grant_missing_permissions(admin.id)
    if added:
        logger.info("ADMIN role granted %d missing permission(s)", added)
    else:
        logger.info("ADMIN role already owns all permissions")
    return added


def assign_role(store: UserStore, user_id: int, role_name: str) -> Role:
    """Give a user a role (idempotent). Assigning ADMIN re-runs the admin sync."""
    role = store.get_role(role_name)
    if role is None:
        raise NotFoundError("Role")
    if store.add_user_role(user_id, role.id):
        logger.info("Role %s assigned to user_id=%s", role_name, user_id)
    if role_name == ADMIN_ROLE:
        ensure_admin_owns_all_permissions(store)
    return role


def revoke_role(store: UserStore, user_id: int, role_name: str) -> bool:
    """Remove a role from a user. Returns False if the user did not hold it."""
    role = store.get_role(role_name)
    if role is None:
        raise NotFoundError("Role")
    removed = store.remove_user_role(user_id, role.id)
    if removed:
        logger.info("Role %s revoked from user_id=%s", role_name, user_id)
    return removed


def seed_rbac(store: UserStore) -> dict[str, int]:
    """Upsert the default permission catalogue and roles, then sync ADMIN.

    Idempotent. Returns counts for CLI reporting.
    """
    permissions = {key: store.upsert_permission(key, desc) for key, desc in DEFAULT_PERMISSIONS.items()}
    roles = {name: store.upsert_role(name, desc) for name, desc in DEFAULT_ROLES.items()}

    granted = 0
    for role_name, keys in DEFAULT_ROLE_GRANTS.items():
        for key in keys:
            if store.grant_permission(roles[role_name].id, permissions[key].id):
                granted += 1

    admin_added = ensure_admin_owns_all_permissions(store)
    logger.info(
        "RBAC seed complete (%d permissions, %d roles, %d default grants added)",
        len(permissions),
        len(roles),
        granted,
    )
    return {
        "permissions": len(permissions),
        "roles": len(roles),
        "grants_added": granted,
        "admin_grants_added": admin_added,
    }
