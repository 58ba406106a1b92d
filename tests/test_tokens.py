"""Unit tests for auth/tokens.py and core/config.parse_duration.

Covers:
- bcrypt hash/verify, including a corrupt stored hash
- Access token round trip; expired vs. malformed vs. foreign-key tokens
- Refresh token generation and HMAC hashing
- Refresh rotation at the store level: a token can be rotated once only
- authenticate_user() by email or username; uniform failure
- Duration strings ("15m", "7d") and fallback on garbage
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import User
from auth.rbac import seed_rbac
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_password,
    hash_refresh_token,
    issue_refresh_token,
    revoke_refresh_token,
    rotate_refresh_token,
    verify_password,
)
from core.config import parse_duration
from core.errors import InvalidCredentialsError, InvalidTokenError, TokenExpiredError, TokenRevokedError


@pytest.fixture
def store():
    """In-memory UserStore with the default roles and one user 'alice'."""
    s = UserStore("sqlite:///:memory:")
    seed_rbac(s)
    s.create_user(User(email="alice@example.com", username="alice", password_hash=hash_password("wonderland1")))
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def test_password_hash_roundtrip():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong-pass", hashed)


def test_verify_password_with_corrupt_hash_returns_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


def test_access_token_carries_identity():
    payload = decode_access_token(create_access_token(42, "bob", "bob@example.com"))
    assert payload["sub"] == 42, "sub must come back as an int"
    assert payload["username"] == "bob"
    assert payload["email"] == "bob@example.com"
    assert payload["exp"] > payload["iat"]


def test_expired_access_token_raises_token_expired():
    token = create_access_token(1, "bob", "bob@example.com", expires_delta=timedelta(seconds=-5))
    with pytest.raises(TokenExpiredError):
        decode_access_token(token)


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_access_token_raises_invalid_token(token):
    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


def test_token_signed_with_other_key_is_invalid():
    foreign = jwt.encode(
        {"sub": "1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "x" * 64,
        algorithm="HS256",
    )
    with pytest.raises(InvalidTokenError):
        decode_access_token(foreign)


def test_expired_and_invalid_codes_differ():
    assert TokenExpiredError().code == "TOKEN_EXPIRED"
    assert InvalidTokenError().code == "INVALID_TOKEN"


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


def test_generate_refresh_token_is_random_hex():
    first, second = generate_refresh_token(), generate_refresh_token()
    assert len(first) == 128
    int(first, 16)
    assert first != second


def test_hash_refresh_token_is_deterministic():
    raw = generate_refresh_token()
    assert hash_refresh_token(raw) == hash_refresh_token(raw)
    assert hash_refresh_token(raw) != raw
    assert len(hash_refresh_token(raw)) == 64


def test_rotate_refresh_token_revokes_presented_token(store):
    user = store.get_by_username("alice")
    raw = issue_refresh_token(store, user.id)

    rotated_user, new_raw = rotate_refresh_token(store, raw)
    assert rotated_user.id == user.id
    assert store.get_refresh_token_by_hash(hash_refresh_token(raw)).revoked is True
    assert store.get_refresh_token_by_hash(hash_refresh_token(new_raw)).revoked is False

    with pytest.raises(TokenRevokedError):
        rotate_refresh_token(store, raw)


def test_store_rotation_succeeds_only_once(store):
    """Two rotations racing on the same record: only the first inserts a successor."""
    user = store.get_by_username("alice")
    raw = issue_refresh_token(store, user.id)
    record = store.get_refresh_token_by_hash(hash_refresh_token(raw))
    expires = datetime.now(timezone.utc) + timedelta(days=1)

    assert store.rotate_refresh_token(record.id, user.id, hash_refresh_token("first"), expires) is True
    assert store.rotate_refresh_token(record.id, user.id, hash_refresh_token("second"), expires) is False
    assert store.get_refresh_token_by_hash(hash_refresh_token("second")) is None


def test_revoke_refresh_token_is_idempotent(store):
    user = store.get_by_username("alice")
    raw = issue_refresh_token(store, user.id)
    assert revoke_refresh_token(store, raw) is True
    assert revoke_refresh_token(store, raw) is False
    assert revoke_refresh_token(store, "never-issued") is False


def test_purge_removes_only_expired_tokens(store):
    user = store.get_by_username("alice")
    live = issue_refresh_token(store, user.id)
    store.create_refresh_token(user.id, hash_refresh_token("old"), datetime.now(timezone.utc) - timedelta(hours=1))

    assert store.purge_expired_refresh_tokens() == 1
    assert store.get_refresh_token_by_hash(hash_refresh_token("old")) is None
    assert store.get_refresh_token_by_hash(hash_refresh_token(live)) is not None


# ---------------------------------------------------------------------------
# authenticate_user
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("identifier", ["alice", "alice@example.com", "ALICE@EXAMPLE.COM"])
def test_authenticate_user_by_email_or_username(store, identifier):
    assert authenticate_user(store, identifier, "wonderland1").username == "alice"


@pytest.mark.parametrize("identifier,password", [("alice", "wrong"), ("nobody", "wonderland1")])
def test_authenticate_user_failures_are_uniform(store, identifier, password):
    with pytest.raises(InvalidCredentialsError) as exc_info:
        authenticate_user(store, identifier, password)
    assert exc_info.value.message == "Invalid credentials"


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "value,expected",
    [
        ("30s", timedelta(seconds=30)),
        ("15m", timedelta(minutes=15)),
        ("2h", timedelta(hours=2)),
        ("7d", timedelta(days=7)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value, timedelta(0)) == expected


@pytest.mark.parametrize("value", ["", "15", "m15", "1w", "-5m"])
def test_parse_duration_falls_back_on_garbage(value):
    assert parse_duration(value, timedelta(minutes=3)) == timedelta(minutes=3)
