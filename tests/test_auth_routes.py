"""
tests/test_auth_routes.py -- Integration tests for /api/v1/auth/*.

Coverage:
  - Register: 201 with USER role, duplicate email/username 409, bad input 400
  - Login: by email and by username, session cookie + no-store, uniform 401
  - Refresh: rotation issues a new token and revokes the old one; revoked,
    unknown and expired tokens never yield an access token
  - Logout: POST and DELETE, idempotent 204, cookie cleared, token revoked
  - Me: roles included; missing/expired/malformed tokens give distinct codes
  - Session cookie takes precedence over the Bearer header
  - Change password: wrong current password 401, success revokes refresh tokens

Fixtures used (from conftest.py): api_client, stores, user_factory. Login sets a session
cookie on the shared TestClient, so clear_cookies runs after every test.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from auth.store import UserStore
from auth.tokens import create_access_token, hash_refresh_token
from content.store import ContentStore
from core.config import get_settings

USER_PASSWORD = "userpass123"
COOKIE = get_settings().session_cookie_name


@pytest.fixture(autouse=True)
def clear_cookies(api_client: tuple[TestClient, str, int]) -> Generator[None, None, None]:
    client, _token, _uid = api_client
    yield
    client.cookies.clear()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _login(client: TestClient, identifier: str, password: str = USER_PASSWORD):
    return client.post("/api/v1/auth/login", json={"emailOrUsername": identifier, "password": password})


class TestRegister:
    def test_register_creates_user_with_user_role(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": "New.Person@Example.com", "username": "newperson", "password": "longenough1"},
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["email"] == "new.person@example.com", "Email must be stored lowercased"
        assert body["data"]["username"] == "newperson"
        assert body["data"]["roles"] == ["USER"]
        assert "passwordHash" not in body["data"]

    def test_register_duplicate_email_conflicts(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        payload = {"email": "dupe@example.com", "username": "dupe1", "password": "longenough1"}
        assert client.post("/api/v1/auth/register", json=payload).status_code == 201
        resp = client.post("/api/v1/auth/register", json={**payload, "username": "dupe2"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "USER_EXISTS"

    def test_register_duplicate_username_conflicts(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        payload = {"email": "same1@example.com", "username": "samename", "password": "longenough1"}
        assert client.post("/api/v1/auth/register", json=payload).status_code == 201
        resp = client.post("/api/v1/auth/register", json={**payload, "email": "same2@example.com"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "USER_EXISTS"

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "not-an-email", "username": "validname", "password": "longenough1"},
            {"email": "ok@example.com", "username": "ab", "password": "longenough1"},
            {"email": "ok@example.com", "username": "bad name!", "password": "longenough1"},
            {"email": "ok@example.com", "username": "validname", "password": "short"},
        ],
    )
    def test_register_rejects_invalid_input(self, api_client: tuple[TestClient, str, int], payload: dict) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 400, f"Expected 400, got {resp.status_code}: {resp.text}"
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


class TestLogin:
    def test_login_by_username_returns_tokens_and_cookie(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        uid, _ = user_factory("login_user")
        resp = _login(client, "login_user")
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()["data"]
        assert data["accessToken"]
        assert data["refreshToken"]
        assert data["user"]["id"] == uid
        assert resp.headers["cache-control"] == "no-store"
        assert COOKIE in resp.cookies, "Login must set the session cookie"

    def test_login_by_email_is_case_insensitive(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        user_factory("email_login")
        resp = _login(client, "EMAIL_LOGIN@example.com")
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"

    def test_wrong_password_and_unknown_user_are_indistinguishable(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        user_factory("wrong_pw")
        wrong = _login(client, "wrong_pw", "not-the-password")
        unknown = _login(client, "nobody-here", "whatever123")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["error"] == unknown.json()["error"]
        assert wrong.json()["error"]["code"] == "INVALID_CREDENTIALS"


class TestRefresh:
    def test_refresh_rotates_token(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        user_factory("rotate_user")
        old_refresh = _login(client, "rotate_user").json()["data"]["refreshToken"]

        resp = client.post("/api/v1/auth/refresh", json={"refreshToken": old_refresh})
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        new_refresh = resp.json()["data"]["refreshToken"]
        assert new_refresh != old_refresh
        assert resp.json()["data"]["accessToken"]

        old_record = stores[0].get_refresh_token_by_hash(hash_refresh_token(old_refresh))
        new_record = stores[0].get_refresh_token_by_hash(hash_refresh_token(new_refresh))
        assert old_record.revoked is True, "Presented token must be revoked"
        assert new_record.revoked is False, "Exactly one live successor must exist"

    def test_reusing_rotated_token_is_rejected(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        user_factory("reuse_user")
        old_refresh = _login(client, "reuse_user").json()["data"]["refreshToken"]
        assert client.post("/api/v1/auth/refresh", json={"refreshToken": old_refresh}).status_code == 200

        resp = client.post("/api/v1/auth/refresh", json={"refreshToken": old_refresh})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "TOKEN_REVOKED"

    def test_unknown_refresh_token_is_rejected(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/refresh", json={"refreshToken": "f" * 128})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    def test_expired_refresh_token_is_rejected_and_deleted(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        user_store = stores[0]
        uid, _ = user_factory("expired_refresh")
        raw = "e" * 128
        user_store.create_refresh_token(uid, hash_refresh_token(raw), datetime.now(timezone.utc) - timedelta(seconds=1))

        resp = client.post("/api/v1/auth/refresh", json={"refreshToken": raw})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Refresh token has expired"
        assert user_store.get_refresh_token_by_hash(hash_refresh_token(raw)) is None


class TestLogout:
    def test_logout_revokes_token_and_clears_cookie(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        user_factory("logout_user")
        refresh = _login(client, "logout_user").json()["data"]["refreshToken"]

        resp = client.post("/api/v1/auth/logout", json={"refreshToken": refresh})
        assert resp.status_code == 204
        set_cookie = resp.headers.get("set-cookie", "")
        assert f"{COOKIE}=" in set_cookie and "Max-Age=0" in set_cookie, "Logout must expire the session cookie"

        again = client.post("/api/v1/auth/refresh", json={"refreshToken": refresh})
        assert again.status_code == 401
        assert again.json()["error"]["code"] == "TOKEN_REVOKED"

    def test_logout_is_idempotent(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert client.post("/api/v1/auth/logout").status_code == 204
        assert client.post("/api/v1/auth/logout", json={"refreshToken": "unknown"}).status_code == 204
        assert client.delete("/api/v1/auth/logout").status_code == 204


class TestMe:
    def test_me_returns_user_with_roles(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        resp = client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        data = resp.json()["data"]
        assert data["id"] == uid
        assert data["username"] == "testadmin"
        assert set(data["roles"]) == {"USER", "ADMIN"}

    def test_me_without_token(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    def test_expired_and_malformed_tokens_have_distinct_codes(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, uid = api_client
        expired = create_access_token(uid, "testadmin", "testadmin@example.com", expires_delta=timedelta(seconds=-10))

        expired_resp = client.get("/api/v1/auth/me", headers=_bearer(expired))
        malformed_resp = client.get("/api/v1/auth/me", headers=_bearer("not.a.jwt"))
        assert expired_resp.status_code == malformed_resp.status_code == 401
        assert expired_resp.json()["error"]["code"] == "TOKEN_EXPIRED"
        assert malformed_resp.json()["error"]["code"] == "INVALID_TOKEN"

    def test_token_for_deleted_user_is_rejected(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        ghost = create_access_token(999999, "ghost", "ghost@example.com")
        resp = client.get("/api/v1/auth/me", headers=_bearer(ghost))
        assert resp.status_code == 401

    def test_session_cookie_wins_over_bearer(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        """With both credentials present, identity comes from the cookie."""
        client, admin_token, _uid = api_client
        cookie_uid, cookie_token = user_factory("cookie_user")
        client.cookies.set(COOKIE, cookie_token)

        resp = client.get("/api/v1/auth/me", headers=_bearer(admin_token))
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == cookie_uid


class TestChangePassword:
    def test_wrong_current_password(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        _, token = user_factory("pw_wrong")
        resp = client.put(
            "/api/v1/auth/change-password",
            json={"currentPassword": "incorrect", "newPassword": "brandnew123"},
            headers=_bearer(token),
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Current password is incorrect"

    def test_change_password_revokes_refresh_tokens(
        self,
        api_client: tuple[TestClient, str, int],
        stores: tuple[UserStore, ContentStore],
        user_factory,
    ) -> None:
        client, _token, _uid = api_client
        _, token = user_factory("pw_change")
        refresh = _login(client, "pw_change").json()["data"]["refreshToken"]
        client.cookies.clear()

        resp = client.put(
            "/api/v1/auth/change-password",
            json={"currentPassword": USER_PASSWORD, "newPassword": "brandnew123"},
            headers=_bearer(token),
        )
        assert resp.status_code == 200, f"Expected 200, got {resp.status_code}: {resp.text}"
        assert resp.json()["data"]["message"] == "Password updated successfully"

        stale = client.post("/api/v1/auth/refresh", json={"refreshToken": refresh})
        assert stale.status_code == 401
        assert stale.json()["error"]["code"] == "TOKEN_REVOKED"
        assert _login(client, "pw_change", USER_PASSWORD).status_code == 401
        assert _login(client, "pw_change", "brandnew123").status_code == 200
