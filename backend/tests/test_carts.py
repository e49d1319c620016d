"""
Cart tests.

Verifies:
- add merges quantities for the same product
- quantity never exceeds inventory
- update/remove of lines, totals
- deleted products cannot be added
"""

import pytest

from conftest import make_product


class TestCart:
    def test_empty_cart(self, client, user_headers):
        resp = client.get("/carts", headers=user_headers)
        assert resp.status_code == 200
        assert resp.get_json() == {"items": [], "total": 0}

    def test_add_merges_lines(self, client, user_headers):
        product = make_product(price=1500, inventory=5)
        client.post(f"/carts/items/{product.id}", json={"quantity": 2}, headers=user_headers)
        resp = client.post(f"/carts/items/{product.id}", json={"quantity": 1}, headers=user_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["items"]) == 1
        assert body["items"][0]["quantity"] == 3
        assert body["items"][0]["product_id"] == str(product.id)
        assert body["total"] == 4500

    def test_add_defaults_to_one(self, client, user_headers):
        product = make_product()
        resp = client.post(f"/carts/items/{product.id}", json={}, headers=user_headers)
        assert resp.get_json()["items"][0]["quantity"] == 1

    def test_merged_quantity_limited_by_inventory(self, client, user_headers):
        product = make_product(inventory=3)
        client.post(f"/carts/items/{product.id}", json={"quantity": 2}, headers=user_headers)
        resp = client.post(f"/carts/items/{product.id}", json={"quantity": 2}, headers=user_headers)
        assert resp.status_code == 409

        cart = client.get("/carts", headers=user_headers).get_json()
        assert cart["items"][0]["quantity"] == 2

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, True])
    def test_invalid_quantity(self, client, user_headers, quantity):
        product = make_product()
        resp = client.post(f"/carts/items/{product.id}", json={"quantity": quantity}, headers=user_headers)
        assert resp.status_code == 400

    def test_unknown_and_deleted_products(self, client, user_headers, db_session):
        product = make_product()
        product.is_deleted = True
        db_session.commit()

        assert client.post(f"/carts/items/{product.id}", json={}, headers=user_headers).status_code == 404
        assert client.post("/carts/items/12345", json={}, headers=user_headers).status_code == 404

    def test_update_and_remove(self, client, user_headers):
        first = make_product(name="First", price=1000, inventory=10)
        second = make_product(name="Second", price=250, inventory=10)
        client.post(f"/carts/items/{first.id}", json={}, headers=user_headers)
        client.post(f"/carts/items/{second.id}", json={"quantity": 2}, headers=user_headers)

        updated = client.patch(f"/carts/items/{first.id}", json={"quantity": 4}, headers=user_headers)
        assert updated.get_json()["total"] == 4000 + 500

        too_many = client.patch(f"/carts/items/{first.id}", json={"quantity": 11}, headers=user_headers)
        assert too_many.status_code == 409

        removed = client.delete(f"/carts/items/{second.id}", headers=user_headers)
        assert [i["name"] for i in removed.get_json()["items"]] == ["First"]

        assert client.delete(f"/carts/items/{second.id}", headers=user_headers).status_code == 404
        assert client.patch(f"/carts/items/{second.id}", json={"quantity": 1}, headers=user_headers).status_code == 404

    def test_carts_are_per_user(self, client, user_headers, admin_headers):
        product = make_product()
        client.post(f"/carts/items/{product.id}", json={}, headers=user_headers)
        assert client.get("/carts", headers=admin_headers).get_json()["items"] == []
