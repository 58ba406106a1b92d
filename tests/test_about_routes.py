"""
tests/test_about_routes.py -- Integration tests for /api/v1/about and /api/v1/admin/about.

Coverage:
  - Public GET: 404 before anything is published, ETag + Cache-Control, 304 on match
  - Admin upsert: first POST creates (201), later POSTs update the latest (200)
  - PUT partial update, DELETE 204/404, publish toggle
  - Single-publish invariant across the publish toggle and PUT published=true
  - Permission checks: anonymous 401, plain USER 403
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from content.models import About

_BODY = {
    "headline": "Backend engineer",
    "bio": "I build APIs.",
    "links": {"github": "https://github.com/example"},
    "skills": ["Python", "FastAPI"],
}


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestAboutAdmin:
    def test_requires_authentication(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/admin/about").status_code == 401

    def test_plain_user_is_forbidden(self, api_client: tuple[TestClient, str, int], user_factory) -> None:
        client, _token, _uid = api_client
        _, token = user_factory("about_reader")
        resp = client.post("/api/v1/admin/about", json=_BODY, headers=_bearer(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "PERMISSION_DENIED"

    def test_upsert_creates_then_updates(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, uid = api_client
        headers = _bearer(token)

        before = client.get("/api/v1/admin/about", headers=headers).json()["data"]["about"]
        created = client.post("/api/v1/admin/about", json=_BODY, headers=headers)
        expected_first = 201 if not before else 200
        assert created.status_code == expected_first, f"Got {created.status_code}: {created.text}"
        about_id = created.json()["data"]["id"]
        assert created.json()["data"]["updatedBy"] == uid

        updated = client.post("/api/v1/admin/about", json={**_BODY, "headline": "Staff engineer"}, headers=headers)
        assert updated.status_code == 200
        assert updated.json()["data"]["id"] == about_id, "Upsert must target the latest entry"
        assert updated.json()["data"]["headline"] == "Staff engineer"

    def test_rejects_invalid_urls(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.post(
            "/api/v1/admin/about",
            json={**_BODY, "avatarUrl": "javascript:alert(1)"},
            headers=_bearer(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_put_rejects_null_for_required_fields(self, api_client: tuple[TestClient, str, int], stores) -> None:
        client, token, _uid = api_client
        about_id = stores[1].create_about(About(headline="Keep", bio="keep"))
        for body in ({"headline": None}, {"bio": None}, {"skills": None}):
            resp = client.put(f"/api/v1/admin/about/{about_id}", json=body, headers=_bearer(token))
            assert resp.status_code == 400, f"{body}: got {resp.status_code}: {resp.text}"
            assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        assert stores[1].get_about(about_id).headline == "Keep"

    def test_put_unknown_id_is_404(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _uid = api_client
        resp = client.put("/api/v1/admin/about/99999", json={"headline": "x"}, headers=_bearer(token))
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "About not found"

    def test_delete(self, api_client: tuple[TestClient, str, int], stores) -> None:
        client, token, _uid = api_client
        about_id = stores[1].create_about(About(headline="Temp", bio="temp"))
        assert client.delete(f"/api/v1/admin/about/{about_id}", headers=_bearer(token)).status_code == 204
        assert client.delete(f"/api/v1/admin/about/{about_id}", headers=_bearer(token)).status_code == 404


class TestAboutPublishing:
    def test_toggle_publish_keeps_single_published(self, api_client: tuple[TestClient, str, int], stores) -> None:
        client, token, _uid = api_client
        content_store = stores[1]
        a = content_store.create_about(About(headline="A", bio="a"))
        b = content_store.create_about(About(headline="B", bio="b"))

        resp = client.patch(f"/api/v1/admin/about/{a}/publish", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["data"]["published"] is True

        resp = client.patch(f"/api/v1/admin/about/{b}/publish", headers=_bearer(token))
        assert resp.json()["data"]["published"] is True
        assert content_store.get_about(a).published is False, "Publishing B must unpublish A"

        resp = client.put(f"/api/v1/admin/about/{a}", json={"published": True}, headers=_bearer(token))
        assert resp.status_code == 200
        assert content_store.get_about(b).published is False, "PUT published=true must also unpublish others"
        published = [x for x in content_store.list_about() if x.published]
        assert len(published) == 1

    def test_toggle_twice_unpublishes(self, api_client: tuple[TestClient, str, int], stores) -> None:
        client, token, _uid = api_client
        about_id = stores[1].create_about(About(headline="Toggle", bio="t"))
        client.patch(f"/api/v1/admin/about/{about_id}/publish", headers=_bearer(token))
        resp = client.patch(f"/api/v1/admin/about/{about_id}/publish", headers=_bearer(token))
        assert resp.json()["data"]["published"] is False


class TestAboutPublic:
    def test_public_about_etag_flow(self, api_client: tuple[TestClient, str, int], stores) -> None:
        client, _token, _uid = api_client
        about_id = stores[1].create_about(About(headline="Public", bio="hello"))
        stores[1].set_about_published(about_id, True)

        resp = client.get("/api/v1/about")
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == about_id
        assert resp.headers["cache-control"] == "public, max-age=60"
        etag = resp.headers["etag"]
        assert etag.startswith('"') and etag.endswith('"')

        cached = client.get("/api/v1/about", headers={"If-None-Match": etag})
        assert cached.status_code == 304
        assert cached.content == b""

        stores[1].update_about(about_id, bio="changed")
        fresh = client.get("/api/v1/about", headers={"If-None-Match": etag})
        assert fresh.status_code == 200, "An edit must change the ETag"
        assert fresh.headers["etag"] != etag

    def test_public_about_404_when_nothing_published(self, api_client: tuple[TestClient, str, int], stores) -> None:
        client, _token, _uid = api_client
        for about in stores[1].list_about():
            stores[1].set_about_published(about.id, False)
        resp = client.get("/api/v1/about")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"
