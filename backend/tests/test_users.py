"""
User lookup route tests.

Verifies:
- GET /users is admin only and paginates oldest first
- POST /users/exists reports registered emails case-insensitively
"""

import pytest

from conftest import make_user


class TestListUsers:
    def test_admin_lists_users(self, client, admin, user, admin_headers):
        resp = client.get("/users", headers=admin_headers)
        assert resp.status_code == 200

        body = resp.get_json()
        assert body["total"] == 2
        assert (body["page"], body["limit"]) == (1, 100)
        assert [u["email"] for u in body["users"]] == ["admin@example.com", "buyer@example.com"]
        assert all("password_hash" not in u for u in body["users"])

    def test_pagination(self, client, admin, admin_headers):
        for i in range(3):
            make_user(email=f"user{i}@example.com")

        page = client.get("/users?page=2&limit=2", headers=admin_headers).get_json()
        assert page["total"] == 4
        assert [u["email"] for u in page["users"]] == ["user1@example.com", "user2@example.com"]

    def test_limit_capped(self, client, admin_headers):
        assert client.get("/users?limit=500", headers=admin_headers).get_json()["limit"] == 100

    def test_bad_page(self, client, admin_headers):
        assert client.get("/users?page=zero", headers=admin_headers).status_code == 400

    def test_requires_admin(self, client, user_headers):
        assert client.get("/users", headers=user_headers).status_code == 403
        assert client.get("/users").status_code == 401


class TestUserExists:
    @pytest.mark.parametrize("email,expected", [
        ("buyer@example.com", True),
        ("BUYER@Example.com", True),
        ("nobody@example.com", False),
    ])
    def test_lookup(self, client, user, email, expected):
        resp = client.post("/users/exists", json={"email": email})
        assert resp.status_code == 200
        assert resp.get_json() == {"exists": expected}

    def test_invalid_email(self, client, db_session):
        assert client.post("/users/exists", json={"email": "not-an-email"}).status_code == 400
