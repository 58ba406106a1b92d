"""
auth/store.py -- SQLAlchemy Core persistence layer for auth and RBAC entities.

Pattern: Repository + Data Mapper (same as content/store.py).
UserStore is the repository; the _row_to_* functions are the mappers.
Route, dependency and RBAC code never touches SQL directly.

Tables:
  users, roles, permissions       -- entities
  role_permissions, user_roles    -- join tables, UNIQUE per pair
  refresh_tokens                  -- HMAC hashes of issued refresh tokens
  settings                        -- key/value markers (e.g. bootstrap lock)

Transactions:
  Multi-statement writes that must be all-or-nothing (refresh rotation,
  password change + token revocation, user creation + default role) run inside
  `with self.engine.begin() as conn:` so they commit together or not at all.
  Single-statement writes follow the connect()/commit() pattern.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, core/, or content/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Permission, RefreshToken, Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # stored lowercased
    Column("username", String(30), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("description", Text),
)

_permissions = Table(
    "permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(100), nullable=False, unique=True),
    Column("description", Text),
)

_role_permissions = Table(
    "role_permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role_id", Integer, nullable=False),
    Column("permission_id", Integer, nullable=False),
    UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("role_id", Integer, nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("user_id", Integer, nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    Column("created_at", String(32), nullable=False),
)

_settings = Table(
    "settings",
    _metadata,
    Column("key", String(100), primary_key=True),
    Column("value", Text, nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(dt: datetime) -> str:
    # Fixed-width UTC timestamps so string comparison in SQL orders correctly.
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, Role, Permission and RefreshToken entities.

    Usage:
        store = UserStore("sqlite:///portfolio.db")
        uid = store.create_user(User(email="a@b.c", username="alice", password_hash=h), roles=["USER"])
        user = store.get_by_email_or_username("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User, roles: list[str] | tuple[str, ...] = ()) -> int:
        """Insert a user, attach the named roles, and return the new ID.

        User row and role links commit together. Unknown role names are
        skipped. Raises sqlalchemy.exc.IntegrityError if the email or
        username is already taken; callers that pre-check should still catch
        it for the concurrent-registration race.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email.lower(),
                    username=user.username,
                    password_hash=user.password_hash,
                    created_at=now,
                    updated_at=now,
                )
            )
            user_id = result.inserted_primary_key[0]
            for name in roles:
                role_id = conn.execute(select(_roles.c.id).where(_roles.c.name == name)).scalar()
                if role_id is not None:
                    conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
        return user_id

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive; emails are stored lowercased)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email_or_username(self, identifier: str) -> User | None:
        """Login lookup: lowercased email match OR exact username match."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.email == identifier.lower()) | (_users.c.username == identifier))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, offset: int = 0, limit: int = 20) -> tuple[list[User], int]:
        """Return one page of users (oldest first) with roles populated, plus the total count."""
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_users)).scalar() or 0
            rows = conn.execute(_users.select().order_by(_users.c.id).offset(offset).limit(limit)).fetchall()
            users = [_row_to_user(r) for r in rows]
            for user in users:
                user.roles = self._role_names(conn, user.id)
        return users, total

    def update_password(self, user_id: int, password_hash: str) -> None:
        """Replace the password hash and revoke every refresh token the user holds.

        One transaction: a password change that left old refresh tokens usable
        would defeat the point of changing it.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _users.update().where(_users.c.id == user_id).values(password_hash=password_hash, updated_at=_now_iso())
            )
            conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.user_id == user_id) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1)
            )

    def get_user_with_roles(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            user = _row_to_user(row)
            user.roles = self._role_names(conn, user_id)
        return user

    # ------------------------------------------------------------------
    # Roles and permissions
    # ------------------------------------------------------------------

    def get_role(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def upsert_role(self, name: str, description: str | None = None) -> Role:
        """Return the named role, creating it if absent. Never overwrites an existing description."""
        with self.engine.begin() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
            if row is None:
                conn.execute(_roles.insert().values(name=name, description=description))
                row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row)

    def upsert_permission(self, key: str, description: str | None = None) -> Permission:
        """Return the permission with this key, creating it if absent."""
        with self.engine.begin() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.key == key)).fetchone()
            if row is None:
                conn.execute(_permissions.insert().values(key=key, description=description))
                row = conn.execute(_permissions.select().where(_permissions.c.key == key)).fetchone()
        return _row_to_permission(row)

    def list_permissions(self) -> list[Permission]:
        with self.engine.connect() as conn:
            rows = conn.execute(_permissions.select().order_by(_permissions.c.key)).fetchall()
        return [_row_to_permission(r) for r in rows]

    def grant_permission(self, role_id: int, permission_id: int) -> bool:
        """Attach one permission to a role. Returns False if it was already attached."""
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(_role_permissions.c.id).where(
                    (_role_permissions.c.role_id == role_id) & (_role_permissions.c.permission_id == permission_id)
                )
            ).fetchone()
            if exists is not None:
                return False
            conn.execute(_role_permissions.insert().values(role_id=role_id, permission_id=permission_id))
        return True

    def grant_missing_permissions(self, role_id: int) -> int:
        """Attach every permission the role lacks. Returns how many were added.

        Existing grants are left untouched; nothing is ever removed.
        """
        with self.engine.begin() as conn:
            attached = select(_role_permissions.c.permission_id).where(_role_permissions.c.role_id == role_id)
            missing = conn.execute(select(_permissions.c.id).where(_permissions.c.id.not_in(attached))).scalars().all()
            for permission_id in missing:
                conn.execute(_role_permissions.insert().values(role_id=role_id, permission_id=permission_id))
        return len(missing)

    def count_role_permissions(self, role_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_role_permissions).where(_role_permissions.c.role_id == role_id)
            ).scalar()
        return result or 0

    def get_user_role_names(self, user_id: int) -> list[str]:
        with self.engine.connect() as conn:
            return self._role_names(conn, user_id)

    def get_user_permission_keys(self, user_id: int) -> list[str]:
        """Distinct permission keys reachable through the user's roles (no ADMIN bypass here)."""
        query = (
            select(_permissions.c.key)
            .distinct()
            .select_from(
                _user_roles.join(_role_permissions, _role_permissions.c.role_id == _user_roles.c.role_id).join(
                    _permissions, _permissions.c.id == _role_permissions.c.permission_id
                )
            )
            .where(_user_roles.c.user_id == user_id)
            .order_by(_permissions.c.key)
        )
        with self.engine.connect() as conn:
            return list(conn.execute(query).scalars().all())

    def list_permission_keys(self) -> list[str]:
        with self.engine.connect() as conn:
            return list(conn.execute(select(_permissions.c.key).order_by(_permissions.c.key)).scalars().all())

    def add_user_role(self, user_id: int, role_id: int) -> bool:
        """Link a user to a role. Returns False if the link already existed."""
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(_user_roles.c.id).where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            ).fetchone()
            if exists is not None:
                return False
            conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
        return True

    def remove_user_role(self, user_id: int, role_id: int) -> bool:
        """Unlink a user from a role. Returns False if there was no link."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _user_roles.delete().where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            )
            conn.commit()
        return result.rowcount > 0

    def count_users_with_role(self, role_name: str) -> int:
        """Used by the role-revoke route to protect the last ADMIN holder."""
        query = (
            select(func.count())
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .where(_roles.c.name == role_name)
        )
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def _role_names(self, conn, user_id: int) -> list[str]:
        rows = conn.execute(
            select(_roles.c.name)
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .where(_user_roles.c.user_id == user_id)
            .order_by(_roles.c.name)
        ).scalars()
        return list(rows)

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def create_refresh_token(self, user_id: int, token_hash: str, expires_at: datetime) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    token_hash=token_hash,
                    user_id=user_id,
                    expires_at=_iso(expires_at),
                    revoked=0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_refresh_token_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Look up a refresh token by its HMAC hash (revoked or not). O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def rotate_refresh_token(self, old_id: int, user_id: int, new_hash: str, expires_at: datetime) -> bool:
        """Revoke token old_id and insert its replacement in one transaction.

        The revoke is conditional on revoked = 0. If another request already
        rotated the same token, zero rows match, nothing is inserted, and this
        returns False.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.id == old_id) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1)
            )
            if result.rowcount != 1:
                return False
            conn.execute(
                _refresh_tokens.insert().values(
                    token_hash=new_hash,
                    user_id=user_id,
                    expires_at=_iso(expires_at),
                    revoked=0,
                    created_at=_now_iso(),
                )
            )
        return True

    def revoke_refresh_token(self, token_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.id == token_id) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1)
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_all_refresh_tokens(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.user_id == user_id) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1)
            )
            conn.commit()
        return result.rowcount

    def delete_refresh_token(self, token_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.id == token_id))
            conn.commit()

    def purge_expired_refresh_tokens(self) -> int:
        """Delete every refresh token whose expiry has passed. Returns rows deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= _now_iso()))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(select(_settings.c.value).where(_settings.c.key == key)).scalar()

    def set_setting(self, key: str, value: str) -> None:
        with self.engine.begin() as conn:
            updated = conn.execute(_settings.update().where(_settings.c.key == key).values(value=value))
            if updated.rowcount == 0:
                conn.execute(_settings.insert().values(key=key, value=value))

    def ping(self) -> bool:
        """Round-trip a SELECT 1 for /health. Raises on connection failure."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        password_hash=row.password_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, description=row.description)


def _row_to_permission(row) -> Permission:
    return Permission(id=row.id, key=row.key, description=row.description)


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        revoked=bool(row.revoked),
        created_at=row.created_at,
    )
