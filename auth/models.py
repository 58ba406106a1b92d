"""
auth/models.py -- Domain dataclasses for authentication and RBAC entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in content/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, core/, or content/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """A local account that can sign in to the admin API.

    email is stored lowercased; username is stored as submitted. Both are
    unique. password_hash is a bcrypt hash and is never serialized by the API.

    roles is populated only by store methods that join user_roles
    (get_user_with_roles, list_users_with_roles); it is empty otherwise.
    """

    email: str
    username: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    roles: list[str] = field(default_factory=list)


@dataclass
class Role:
    """A named bundle of permissions. ADMIN and USER are seeded at startup."""

    name: str
    description: str | None = None
    id: int | None = None


@dataclass
class Permission:
    """A single grant key in "<resource>:<action>" form, e.g. "project:publish"."""

    key: str
    description: str | None = None
    id: int | None = None


@dataclass
class RefreshToken:
    """A stored refresh token record.

    Security design:
    - token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token is
      returned to the client once and never persisted, so a DB leak alone
      cannot be replayed against /auth/refresh.
    - revoked is terminal. Rotation flips it to True on the presented token
      and inserts a fresh record; nothing ever flips it back.
    """

    user_id: int
    token_hash: str
    expires_at: str  # ISO 8601, UTC
    id: int | None = None
    revoked: bool = False
    created_at: str | None = None
