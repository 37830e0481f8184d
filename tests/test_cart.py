import pytest
from bson import ObjectId

import cart
import orders
from conftest import auth_headers
from database import CARTS, PRODUCTS
from errors import NotFoundError
from schemas import OrderCreate


def test_get_cart_creates_empty_cart(db, buyer):
    created = cart.get_cart(db, buyer)

    assert created["items"] == []
    assert db[CARTS].count_documents({"user": buyer.object_id}) == 1
    assert cart.get_cart(db, buyer)["_id"] == created["_id"]


def test_adding_same_product_merges_quantity(db, buyer, lamp, rug):
    cart.add_item(db, buyer, str(lamp["_id"]), 1)
    cart.add_item(db, buyer, str(rug["_id"]), 1)
    updated = cart.add_item(db, buyer, str(lamp["_id"]), 2)

    assert [(item["product"], item["quantity"]) for item in updated["items"]] == [(lamp["_id"], 3), (rug["_id"], 1)]
    assert cart.populate_cart(db, updated)["subtotal"] == 500.0


def test_add_unknown_product(db, buyer):
    with pytest.raises(NotFoundError):
        cart.add_item(db, buyer, str(ObjectId()), 1)


def test_subtotal_follows_price_changes(db, buyer, lamp):
    current = cart.add_item(db, buyer, str(lamp["_id"]), 2)
    db[PRODUCTS].update_one({"_id": lamp["_id"]}, {"$set": {"price": 80.0}})

    populated = cart.populate_cart(db, current)

    assert populated["subtotal"] == 160.0
    assert populated["items"][0]["product"]["name"] == "Desk Lamp"


class TestUpdateItem:
    def test_sets_quantity(self, db, buyer, lamp):
        cart.add_item(db, buyer, str(lamp["_id"]), 1)
        updated = cart.update_item(db, buyer, str(lamp["_id"]), 4)
        assert updated["items"][0]["quantity"] == 4

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_drops_line(self, db, buyer, lamp, rug, quantity):
        cart.add_item(db, buyer, str(lamp["_id"]), 1)
        cart.add_item(db, buyer, str(rug["_id"]), 1)

        updated = cart.update_item(db, buyer, str(lamp["_id"]), quantity)

        assert [item["product"] for item in updated["items"]] == [rug["_id"]]

    def test_item_not_in_cart(self, db, buyer, lamp, rug):
        cart.add_item(db, buyer, str(lamp["_id"]), 1)
        with pytest.raises(NotFoundError) as exc_info:
            cart.update_item(db, buyer, str(rug["_id"]), 2)
        assert exc_info.value.message == "Item not found in cart"

    def test_without_cart(self, db, buyer, lamp):
        with pytest.raises(NotFoundError) as exc_info:
            cart.update_item(db, buyer, str(lamp["_id"]), 2)
        assert exc_info.value.message == "Cart not found"


def test_remove_and_clear(db, buyer, lamp, rug):
    cart.add_item(db, buyer, str(lamp["_id"]), 1)
    cart.add_item(db, buyer, str(rug["_id"]), 1)

    assert [item["product"] for item in cart.remove_item(db, buyer, str(lamp["_id"]))["items"]] == [rug["_id"]]

    cart.clear_cart(db, buyer)
    assert db[CARTS].find_one({"user": buyer.object_id})["items"] == []


def test_carts_are_per_buyer(db, buyer, other_buyer, lamp):
    cart.add_item(db, buyer, str(lamp["_id"]), 1)

    assert cart.get_cart(db, other_buyer)["items"] == []
    cart.clear_cart(db, other_buyer)
    assert len(db[CARTS].find_one({"user": buyer.object_id})["items"]) == 1


def test_checkout_empties_cart(db, buyer, lamp):
    cart.add_item(db, buyer, str(lamp["_id"]), 2)

    orders.create_order(db, buyer, OrderCreate(items=[{"product": str(lamp["_id"]), "quantity": 2}]))

    assert db[CARTS].find_one({"user": buyer.object_id})["items"] == []


def test_failed_checkout_keeps_cart(db, buyer, lamp):
    cart.add_item(db, buyer, str(lamp["_id"]), 2)

    with pytest.raises(NotFoundError):
        orders.create_order(db, buyer, OrderCreate(items=[{"product": str(ObjectId())}]))

    assert len(db[CARTS].find_one({"user": buyer.object_id})["items"]) == 1


def test_cart_endpoints(client, buyer, lamp):
    headers = auth_headers(buyer)

    assert client.get("/api/cart", headers=headers).json()["items"] == []

    body = client.post("/api/cart/add", json={"productId": str(lamp["_id"]), "quantity": 2}, headers=headers).json()
    assert body["subtotal"] == 200.0
    assert body["items"][0]["product"]["_id"] == str(lamp["_id"])

    body = client.patch(f"/api/cart/update/{lamp['_id']}", json={"quantity": 3}, headers=headers).json()
    assert body["items"][0]["quantity"] == 3

    body = client.delete(f"/api/cart/remove/{lamp['_id']}", headers=headers).json()
    assert body["items"] == []

    response = client.delete("/api/cart/clear", headers=headers)
    assert response.json() == {"message": "Cart cleared successfully"}


def test_cart_endpoint_errors(client, buyer, lamp):
    headers = auth_headers(buyer)

    assert client.get("/api/cart").status_code == 401
    response = client.patch(f"/api/cart/update/{lamp['_id']}", json={"quantity": 1}, headers=headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Cart not found"
    response = client.post("/api/cart/add", json={"productId": str(lamp["_id"]), "quantity": 0}, headers=headers)
    assert response.status_code == 422
