"""
auth/tokens.py -- JWT, password hashing, and refresh-token utilities.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are signed with SECRET_KEY and
       carry sub (user id as a string), username, email, iat and exp.
       decode_access_token() raises TokenExpiredError for an expired signature
       and InvalidTokenError for everything else, so clients can tell "refresh
       now" apart from "sign in again".

  Passwords: bcrypt used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email or username exists [C1].

  Refresh tokens: secrets.token_hex(64) gives 512 bits of entropy. We store
       HMAC-SHA256(SECRET_KEY, raw_token) so lookup is O(1); bcrypt's
       intentional slowness is unnecessary for high-entropy secrets.
       Rotation revokes the presented token and issues exactly one new token
       in a single transaction (UserStore.rotate_refresh_token). Revocation
       is terminal.

  SECRET_KEY: sourced from core.config.get_settings(), which validates it at
       startup [M6].

Layer rule: no imports from api/ or content/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings
from core.errors import InvalidCredentialsError, InvalidTokenError, TokenExpiredError, TokenRevokedError, UnauthorizedError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("portfolio.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes. The API caps passwords at 128
    characters, so multi-byte input can still hit the limit; that is accepted.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1]. Always call verify_password() even when
# the account does not exist so both failure paths cost one bcrypt round.
_DUMMY_HASH: str = hash_password("portfolio_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: int,
    username: str,
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Encode a signed access token for the given identity.

    Args:
        user_id:       Numeric user ID; stored as the string sub claim.
        username:      Display identity, echoed back by /auth/me clients.
        email:         Account email.
        expires_delta: Token lifetime. Defaults to JWT_ACCESS_EXPIRES (15m).
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else _settings.access_token_ttl)
    payload = {
        "sub": str(user_id),
        "username": username,
        "email": email,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify a JWT and return its payload with sub converted back to int.

    Raises:
        TokenExpiredError: the signature is valid but exp has passed.
        InvalidTokenError: bad signature, malformed token, or missing claims.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except JWTError as exc:
        raise InvalidTokenError() from exc

    try:
        payload["sub"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError() from exc
    return payload


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, identifier: str, password: str) -> User:
    """Authenticate an email-or-username / password pair with timing equalization.

    The identifier matches either the lowercased email or the exact username.
    Always runs bcrypt whether or not the user exists:
    - Unknown account: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success. Raises InvalidCredentialsError on any failure,
    with the same message for both cases so account existence never leaks.
    """
    user = store.get_by_email_or_username(identifier)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentialsError()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()
    return user


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


def generate_refresh_token() -> str:
    """Return 64 random bytes as 128 hex characters. Opaque to clients."""
    return secrets.token_hex(64)


def hash_refresh_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string.

    Deterministic, so the store can look records up by hash through the
    UNIQUE index. Without SECRET_KEY the stored hashes are useless.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


def get_refresh_token_expiry(now: datetime | None = None) -> datetime:
    """Return the absolute expiry for a refresh token issued at *now*."""
    return (now or datetime.now(timezone.utc)) + _settings.refresh_token_ttl


def issue_refresh_token(store: UserStore, user_id: int) -> str:
    """Create and persist a refresh token for user_id. Returns the raw token."""
    raw = generate_refresh_token()
    store.create_refresh_token(user_id, hash_refresh_token(raw), get_refresh_token_expiry())
    return raw


def rotate_refresh_token(store: UserStore, raw_token: str) -> tuple[User, str]:
    """Exchange a refresh token for a new one. Returns (user, new_raw_token).

    Order of checks:
      1. Unknown hash            -> UnauthorizedError("Invalid refresh token")
      2. Already revoked         -> TokenRevokedError
      3. Past expires_at         -> record deleted, UnauthorizedError
      4. Owner no longer exists  -> UnauthorizedError
    Then the store revokes the presented token and inserts the replacement in
    one transaction. If a concurrent request revoked it first, the store
    reports zero rows and this raises TokenRevokedError; at most one caller
    ever receives a successor token.
    """
    record = store.get_refresh_token_by_hash(hash_refresh_token(raw_token))
    if record is None:
        raise UnauthorizedError("Invalid refresh token")
    if record.revoked:
        logger.warning("Revoked refresh token presented for user_id=%s", record.user_id)
        raise TokenRevokedError()
    if datetime.fromisoformat(record.expires_at) <= datetime.now(timezone.utc):
        store.delete_refresh_token(record.id)
        raise UnauthorizedError("Refresh token has expired")

    user = store.get_by_id(record.user_id)
    if user is None:
        raise UnauthorizedError("User not found")

    new_raw = generate_refresh_token()
    rotated = store.rotate_refresh_token(record.id, user.id, hash_refresh_token(new_raw), get_refresh_token_expiry())
    if not rotated:
        raise TokenRevokedError()
    logger.info("Refresh token rotated for user_id=%s", user.id)
    return user, new_raw


def revoke_refresh_token(store: UserStore, raw_token: str) -> bool:
    """Revoke a single refresh token (logout). Returns False if unknown or already revoked."""
    record = store.get_refresh_token_by_hash(hash_refresh_token(raw_token))
    if record is None:
        return False
    return store.revoke_refresh_token(record.id)
