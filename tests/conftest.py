"""
Shared pytest fixtures.

Every test gets its own in-memory MongoDB (mongomock) that replaces the real
database through FastAPI's dependency overrides.
"""
import os

os.environ.pop("DATABASE_URL", None)

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import Caller, create_access_token
from database import PRODUCTS, USERS, get_db
from main import app
from schemas import Role


@pytest.fixture
def db():
    return mongomock.MongoClient()["marketplace_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_caller(db, role: Role, name: str) -> Caller:
    user_id = ObjectId()
    db[USERS].insert_one({"_id": user_id, "name": name, "email": f"{name.lower()}@example.com", "role": role.value})
    return Caller(id=str(user_id), role=role)


def auth_headers(caller: Caller) -> dict:
    return {"Authorization": f"Bearer {create_access_token(caller.id, caller.role.value)}"}


@pytest.fixture
def buyer(db) -> Caller:
    return make_caller(db, Role.USER, "Sita")


@pytest.fixture
def other_buyer(db) -> Caller:
    return make_caller(db, Role.USER, "Hari")


@pytest.fixture
def admin(db) -> Caller:
    return make_caller(db, Role.ADMIN, "Admin")


@pytest.fixture
def vendor(db) -> Caller:
    return make_caller(db, Role.VENDOR, "Vendor")


@pytest.fixture
def other_vendor(db) -> Caller:
    return make_caller(db, Role.VENDOR, "Rival")


@pytest.fixture
def lamp(db, vendor) -> dict:
    product = {
        "_id": ObjectId(),
        "name": "Desk Lamp",
        "description": "Brass desk lamp",
        "price": 100.0,
        "category": "home",
        "images": ["/uploads/lamp.png"],
        "stock": 10,
        "vendorId": vendor.object_id,
    }
    db[PRODUCTS].insert_one(product)
    return product


@pytest.fixture
def rug(db, vendor) -> dict:
    product = {
        "_id": ObjectId(),
        "name": "Wool Rug",
        "description": "Hand-knotted rug",
        "price": 200.0,
        "category": "home",
        "images": ["/uploads/rug.png"],
        "stock": 3,
        "vendorId": vendor.object_id,
    }
    db[PRODUCTS].insert_one(product)
    return product


@pytest.fixture
def kettle(db, other_vendor) -> dict:
    product = {
        "_id": ObjectId(),
        "name": "Copper Kettle",
        "description": "",
        "price": 50.0,
        "category": "kitchen",
        "images": [],
        "stock": 5,
        "vendorId": other_vendor.object_id,
    }
    db[PRODUCTS].insert_one(product)
    return product
