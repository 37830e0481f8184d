import pytest
from bson import ObjectId

import catalog
from conftest import auth_headers
from database import PRODUCTS
from errors import AuthorizationError, NotFoundError, ValidationError
from schemas import Product, ProductUpdate


def test_vendor_product_is_tagged_with_vendor(db, vendor):
    product = catalog.create_product(
        db, Product(name="  Clay Pot ", price=45, category=" kitchen ", stock=4), vendor
    )

    stored = db[PRODUCTS].find_one({"_id": product["_id"]})
    assert stored["name"] == "Clay Pot"
    assert stored["category"] == "kitchen"
    assert stored["vendorId"] == vendor.object_id
    assert "createdAt" in stored


def test_admin_product_has_no_vendor(db, admin):
    product = catalog.create_product(db, Product(name="Mug", price=5, category="kitchen"), admin)
    assert "vendorId" not in product


def test_buyer_cannot_create_products(db, buyer):
    with pytest.raises(AuthorizationError):
        catalog.create_product(db, Product(name="Mug", price=5, category="kitchen"), buyer)


def test_vendor_edits_only_own_products(db, vendor, other_vendor, lamp):
    with pytest.raises(AuthorizationError):
        catalog.update_product(db, str(lamp["_id"]), ProductUpdate(price=90), other_vendor)

    updated = catalog.update_product(db, str(lamp["_id"]), ProductUpdate(price=90), vendor)

    assert updated["price"] == 90
    assert db[PRODUCTS].find_one({"_id": lamp["_id"]})["price"] == 90


def test_admin_deletes_any_product(db, admin, lamp):
    catalog.delete_product(db, str(lamp["_id"]), admin)
    with pytest.raises(NotFoundError):
        catalog.get_product(db, str(lamp["_id"]))


def test_get_product_errors(db):
    with pytest.raises(NotFoundError):
        catalog.get_product(db, str(ObjectId()))
    with pytest.raises(ValidationError):
        catalog.get_product(db, "123")


def test_list_filters(db, lamp, rug, kettle):
    assert {p["name"] for p in catalog.list_products(db, category="home")} == {"Desk Lamp", "Wool Rug"}
    assert [p["name"] for p in catalog.list_products(db, q="hand-knotted")] == ["Wool Rug"]


def test_vendor_products(db, vendor, lamp, rug, kettle):
    assert {p["name"] for p in catalog.list_vendor_products(db, vendor)} == {"Desk Lamp", "Wool Rug"}


def test_product_endpoints(client, vendor, buyer):
    response = client.post(
        "/api/products",
        json={"name": "Singing Bowl", "price": 1500, "category": "decor", "stock": 2},
        headers=auth_headers(vendor),
    )
    assert response.status_code == 201
    product_id = response.json()["_id"]
    assert response.json()["vendorId"] == vendor.id

    assert client.get(f"/api/products/{product_id}").json()["name"] == "Singing Bowl"
    assert len(client.get("/api/products").json()) == 1

    denied = client.post(
        "/api/products",
        json={"name": "Bowl", "price": 10, "category": "decor"},
        headers=auth_headers(buyer),
    )
    assert denied.status_code == 403

    response = client.delete(f"/api/products/{product_id}", headers=auth_headers(vendor))
    assert response.json() == {"message": "Product removed"}
    assert client.get(f"/api/products/{product_id}").status_code == 404
