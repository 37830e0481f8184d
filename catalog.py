"""
Catalog store: product records referenced by bargains and orders.
"""
import logging
from typing import List, Optional

from pymongo.database import Database

from auth import Caller
from database import PRODUCTS, create_document, get_documents, to_object_id, utcnow
from errors import AuthorizationError, NotFoundError
from schemas import Product, ProductUpdate

logger = logging.getLogger(__name__)


def product_summary(product: Optional[dict]) -> Optional[dict]:
    if product is None:
        return None
    return {
        "_id": product["_id"],
        "name": product.get("name"),
        "price": product.get("price"),
        "images": product.get("images", []),
        "vendorId": product.get("vendorId"),
    }


def list_products(db: Database, category: Optional[str] = None, q: Optional[str] = None) -> List[dict]:
    filter_q = {}
    if category:
        filter_q["category"] = category
    products = get_documents(PRODUCTS, filter_q, database=db)
    # simple search filter if q
    if q:
        q_lower = q.lower()
        products = [
            p for p in products
            if q_lower in p.get("name", "").lower() or q_lower in p.get("description", "").lower()
        ]
    return products


def list_vendor_products(db: Database, caller: Caller) -> List[dict]:
    return get_documents(PRODUCTS, {"vendorId": caller.object_id}, database=db)


def get_product(db: Database, product_id) -> dict:
    product = db[PRODUCTS].find_one({"_id": to_object_id(product_id, "product")})
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _check_owner(product: dict, caller: Caller) -> None:
    if caller.is_admin:
        return
    if caller.is_vendor and product.get("vendorId") == caller.object_id:
        return
    raise AuthorizationError("You are not authorized to modify this product")


def create_product(db: Database, data: Product, caller: Caller) -> dict:
    if not (caller.is_admin or caller.is_vendor):
        raise AuthorizationError("Not authorized - requires admin or vendor role")
    doc = data.model_dump()
    doc["name"] = doc["name"].strip()
    doc["category"] = doc["category"].strip()
    if caller.is_vendor:
        doc["vendorId"] = caller.object_id
    create_document(PRODUCTS, doc, database=db)
    logger.info(f"Product {doc['_id']} created by {caller.role.value} {caller.id}")
    return doc


def update_product(db: Database, product_id, data: ProductUpdate, caller: Caller) -> dict:
    product = get_product(db, product_id)
    _check_owner(product, caller)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return product
    changes["updatedAt"] = utcnow()
    db[PRODUCTS].update_one({"_id": product["_id"]}, {"$set": changes})
    product.update(changes)
    return product


def delete_product(db: Database, product_id, caller: Caller) -> None:
    product = get_product(db, product_id)
    _check_owner(product, caller)
    db[PRODUCTS].delete_one({"_id": product["_id"]})
    logger.info(f"Product {product['_id']} removed by {caller.role.value} {caller.id}")
