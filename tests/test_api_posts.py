"""
tests/test_api_posts.py -- Integration tests for the post CRUD routes.

Coverage:
  - Every posts route answers 401 without a live session
  - Create 201, get, list with pagination metadata, update, delete
  - Another user's post answers 404 on get/update/delete
  - Body and query validation answers 400
"""

from __future__ import annotations

import pytest


@pytest.fixture(scope="module")
def owner(api):
    body = {"first_name": "Post", "last_name": "Owner", "age": 28, "email": "owner@example.com", "password": "Pass123"}
    token = api.client.post("/api/v1/user/signup", json=body).json()["token"]
    api.client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def stranger(api):
    body = {"first_name": "Some", "last_name": "Stranger", "age": 35, "email": "stranger@example.com", "password": "Pass123"}
    token = api.client.post("/api/v1/user/signup", json=body).json()["token"]
    api.client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}


def _create(api, headers, title="A post title", body="A post body of reasonable length.") -> dict:
    resp = api.client.post("/api/v1/posts/create", json={"title": title, "body": body}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestPostsAuth:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("post", "/api/v1/posts/create"),
            ("get", "/api/v1/posts"),
            ("get", "/api/v1/posts/1"),
            ("patch", "/api/v1/posts/1/update"),
            ("delete", "/api/v1/posts/1/delete"),
        ],
    )
    def test_requires_session(self, api, method, path) -> None:
        resp = getattr(api.client, method)(path)
        assert resp.status_code == 401


class TestPostsCrud:
    def test_create_and_get(self, api, owner) -> None:
        created = _create(api, owner, title="Hello world")
        assert created["title"] == "Hello world"
        resp = api.client.get(f"/api/v1/posts/{created['id']}", headers=owner)
        assert resp.status_code == 200
        assert resp.json() == created

    def test_update(self, api, owner) -> None:
        created = _create(api, owner)
        resp = api.client.patch(
            f"/api/v1/posts/{created['id']}/update", json={"title": "Edited title"}, headers=owner
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Edited title"
        assert resp.json()["body"] == created["body"]

    def test_update_needs_a_field(self, api, owner) -> None:
        created = _create(api, owner)
        resp = api.client.patch(f"/api/v1/posts/{created['id']}/update", json={}, headers=owner)
        assert resp.status_code == 400

    def test_delete(self, api, owner) -> None:
        created = _create(api, owner)
        resp = api.client.delete(f"/api/v1/posts/{created['id']}/delete", headers=owner)
        assert resp.status_code == 200
        assert api.client.get(f"/api/v1/posts/{created['id']}", headers=owner).status_code == 404

    def test_missing_post(self, api, owner) -> None:
        resp = api.client.get("/api/v1/posts/99999", headers=owner)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "post_not_found"

    @pytest.mark.parametrize("payload", [{"title": "Hi", "body": "Long enough body."}, {"title": "Title ok", "body": "short"}])
    def test_invalid_body(self, api, owner, payload) -> None:
        assert api.client.post("/api/v1/posts/create", json=payload, headers=owner).status_code == 400


class TestPostsOwnership:
    def test_strangers_get_404(self, api, owner, stranger) -> None:
        created = _create(api, owner)
        post_id = created["id"]
        assert api.client.get(f"/api/v1/posts/{post_id}", headers=stranger).status_code == 404
        assert (
            api.client.patch(f"/api/v1/posts/{post_id}/update", json={"title": "Mine now"}, headers=stranger).status_code
            == 404
        )
        assert api.client.delete(f"/api/v1/posts/{post_id}/delete", headers=stranger).status_code == 404
        assert api.client.get(f"/api/v1/posts/{post_id}", headers=owner).json()["title"] == created["title"]


class TestPostsPagination:
    def test_list_pages(self, api) -> None:
        body = {"first_name": "Page", "last_name": "Turner", "age": 50, "email": "pager@example.com", "password": "Pass123"}
        token = api.client.post("/api/v1/user/signup", json=body).json()["token"]
        api.client.cookies.clear()
        headers = {"Authorization": f"Bearer {token}"}
        for i in range(7):
            _create(api, headers, title=f"Post number {i}")

        first = api.client.get("/api/v1/posts", params={"page": 1, "limit": 5}, headers=headers).json()
        second = api.client.get("/api/v1/posts", params={"page": 2, "limit": 5}, headers=headers).json()

        assert first["total_items"] == 7
        assert len(first["items"]) == 5
        assert first["has_next"] is True
        assert len(second["items"]) == 2
        assert second["has_next"] is False
        assert second["page"] == 2 and second["limit"] == 5

    @pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
    def test_bad_query(self, api, owner, params) -> None:
        assert api.client.get("/api/v1/posts", params=params, headers=owner).status_code == 400
