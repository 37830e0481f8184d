"""
Per-buyer shopping cart.

A cart holds product ids and quantities only. Prices are read from the
catalog whenever the cart is shown, so the subtotal follows price edits until
the buyer checks out.
"""
import logging
from typing import List

from pymongo.database import Database
from pymongo.errors import PyMongoError

from auth import Caller
from catalog import get_product, product_summary
from database import CARTS, PRODUCTS, create_document, to_object_id, utcnow
from errors import NotFoundError

logger = logging.getLogger(__name__)


def _find_cart(db: Database, caller: Caller) -> dict:
    cart = db[CARTS].find_one({"user": caller.object_id})
    if not cart:
        raise NotFoundError("Cart not found")
    return cart


def _save_items(db: Database, cart: dict, items: List[dict]) -> dict:
    db[CARTS].update_one({"_id": cart["_id"]}, {"$set": {"items": items, "updatedAt": utcnow()}})
    cart["items"] = items
    return cart


def populate_cart(db: Database, cart: dict) -> dict:
    """Cart with product summaries and a subtotal at current prices."""
    lines = []
    subtotal = 0.0
    for item in cart.get("items", []):
        product = product_summary(db[PRODUCTS].find_one({"_id": item["product"]}))
        if product is not None:
            subtotal += float(product["price"]) * item["quantity"]
        lines.append({"product": product or item["product"], "quantity": item["quantity"]})
    return {
        "_id": cart["_id"],
        "user": cart["user"],
        "items": lines,
        "subtotal": round(subtotal, 2),
        "updatedAt": cart.get("updatedAt"),
    }


def get_cart(db: Database, caller: Caller) -> dict:
    cart = db[CARTS].find_one({"user": caller.object_id})
    if not cart:
        cart = {"user": caller.object_id, "items": []}
        create_document(CARTS, cart, database=db)
    return cart


def add_item(db: Database, caller: Caller, product_id, quantity: int = 1) -> dict:
    product = get_product(db, product_id)
    cart = get_cart(db, caller)

    items = [dict(item) for item in cart.get("items", [])]
    for item in items:
        if item["product"] == product["_id"]:
            item["quantity"] += quantity
            break
    else:
        items.append({"product": product["_id"], "quantity": quantity})
    return _save_items(db, cart, items)


def update_item(db: Database, caller: Caller, product_id, quantity: int) -> dict:
    """Set a line's quantity; zero or less drops the line."""
    cart = _find_cart(db, caller)
    product_oid = to_object_id(product_id, "product")

    items = [dict(item) for item in cart.get("items", [])]
    line = next((item for item in items if item["product"] == product_oid), None)
    if line is None:
        raise NotFoundError("Item not found in cart")

    if quantity <= 0:
        items = [item for item in items if item["product"] != product_oid]
    else:
        line["quantity"] = quantity
    return _save_items(db, cart, items)


def remove_item(db: Database, caller: Caller, product_id) -> dict:
    cart = _find_cart(db, caller)
    product_oid = to_object_id(product_id, "product")
    items = [item for item in cart.get("items", []) if item["product"] != product_oid]
    return _save_items(db, cart, items)


def clear_cart(db: Database, caller: Caller) -> None:
    cart = _find_cart(db, caller)
    _save_items(db, cart, [])


def empty_after_checkout(db: Database, user_id) -> None:
    """Empty the buyer's cart once an order is placed; the order stands either way."""
    try:
        db[CARTS].update_one({"user": user_id}, {"$set": {"items": [], "updatedAt": utcnow()}})
    except PyMongoError as e:
        logger.warning(f"Could not empty cart for user {user_id} after checkout: {e}")
