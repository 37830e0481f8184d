"""
Order workflow: checkout, order numbering, status changes and payment updates.

Line prices are frozen when the order is created; later product price edits
never reach an existing order.
"""
import logging
from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth import Caller
from bargains import create_order_level_bargain
from cart import empty_after_checkout
from catalog import product_summary
from database import BARGAINS, COUNTERS, ORDERS, PRODUCTS, USERS, create_document, to_object_id, utcnow
from errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from notifications import notify
from schemas import BargainStatus, NotificationType, OrderCreate, OrderStatus, PaymentMethod, PaymentStatus
from settings import get_settings
from workflow import next_order_status

logger = logging.getLogger(__name__)

ORDER_NUMBER_COUNTER = "orderNumber"


def format_order_number(created_at: datetime, sequence: int) -> str:
    return f"ORD-{created_at.strftime('%y%m%d')}-{sequence}"


def next_order_sequence(db: Database) -> int:
    """Atomically take the next order sequence value."""
    if db[COUNTERS].find_one({"_id": ORDER_NUMBER_COUNTER}) is None:
        # continue from the existing order count the first time round
        try:
            db[COUNTERS].insert_one({"_id": ORDER_NUMBER_COUNTER, "seq": db[ORDERS].count_documents({})})
        except DuplicateKeyError:
            pass
    counter = db[COUNTERS].find_one_and_update(
        {"_id": ORDER_NUMBER_COUNTER},
        {"$inc": {"seq": 1}},
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def _line_price(db: Database, item, product: dict, buyer_id: ObjectId) -> float:
    """The buyer's accepted bargain on this product sets the price, else the live price."""
    if not item.bargainId or not ObjectId.is_valid(item.bargainId):
        return product["price"]
    bargain = db[BARGAINS].find_one({"_id": ObjectId(item.bargainId)})
    if (
        bargain
        and bargain.get("status") == BargainStatus.ACCEPTED.value
        and bargain.get("user") == buyer_id
        and bargain.get("product") == product["_id"]
    ):
        return bargain["proposedPrice"]
    return product["price"]


def _build_lines(db: Database, payload: OrderCreate, buyer_id: ObjectId) -> List[dict]:
    if not payload.items:
        raise ValidationError("Items array is required and cannot be empty")

    lines = []
    for item in payload.items:
        if not item.product:
            raise ValidationError("Each item must have a product ID")
        if item.quantity < 1:
            raise ValidationError(f"Quantity for product {item.product} must be at least 1")
        product = db[PRODUCTS].find_one({"_id": to_object_id(item.product, "product")})
        if not product:
            raise NotFoundError(f"Product {item.product} not found")

        lines.append(
            {
                "product": product["_id"],
                "quantity": item.quantity,
                "price": _line_price(db, item, product, buyer_id),
                "bargain": ObjectId(item.bargainId) if item.bargainId and ObjectId.is_valid(item.bargainId) else None,
            }
        )
    return lines


def _insert_order(db: Database, order: dict) -> None:
    """Insert with a fresh order number, retrying on a number collision."""
    retries = get_settings().ORDER_NUMBER_RETRIES
    for attempt in range(retries + 1):
        order["orderNumber"] = format_order_number(order["createdAt"], next_order_sequence(db))
        try:
            create_document(ORDERS, order, database=db)
            return
        except DuplicateKeyError:
            order.pop("_id", None)
            logger.warning(f"Order number {order['orderNumber']} already taken (attempt {attempt + 1})")
    raise ConflictError("Error generating unique order number. Please try again.")


def create_order(db: Database, caller: Caller, payload: OrderCreate) -> dict:
    settings = get_settings()
    buyer_id = caller.object_id

    lines = _build_lines(db, payload, buyer_id)
    total = round(sum(line["price"] * line["quantity"] for line in lines), 2)

    bargain = None
    status = OrderStatus.PENDING
    proposed = payload.proposedPrice
    if proposed is not None and 0 < proposed < total:
        bargain = create_order_level_bargain(
            db,
            buyer_id,
            [{"productId": line["product"], "quantity": line["quantity"], "price": line["price"]} for line in lines],
            proposed,
        )
        status = OrderStatus.AWAITING_BARGAIN_APPROVAL

    address = payload.shippingAddress or payload.address
    order = {
        "user": buyer_id,
        "items": lines,
        "totalAmount": total,
        "proposedTotal": float(proposed) if bargain else None,
        "bargainRequest": bargain["_id"] if bargain else None,
        "status": status.value,
        "paymentStatus": PaymentStatus.PENDING.value,
        "paymentMethod": payload.paymentMethod.value if payload.paymentMethod else None,
        "paymentSelected": False,
        "paymentSelectedAt": None,
        "shippingAddress": {
            "street": address.street if address else "",
            "city": address.city if address else "",
            "state": address.state if address else "",
            "zipCode": address.zipCode if address else "",
            "country": (address.country if address else None) or settings.DEFAULT_COUNTRY,
        },
        "contactInfo": {
            "fullName": payload.fullName or "",
            "email": payload.email or "",
            "phone": payload.phone or "",
        },
        "notes": payload.notes,
        "createdAt": utcnow(),
    }

    try:
        _insert_order(db, order)
    except (ConflictError, PyMongoError):
        if bargain is not None:
            db[BARGAINS].delete_one({"_id": bargain["_id"]})
            logger.warning(f"Removed whole-order bargain {bargain['_id']} after failed order insert")
        raise

    empty_after_checkout(db, caller.object_id)

    logger.info(
        f"Order {order['orderNumber']} created by {caller.id}: total {total}, status {order['status']}"
    )
    return order


def _bargain_summary(db: Database, bargain_id, *fields) -> Optional[dict]:
    if bargain_id is None:
        return None
    bargain = db[BARGAINS].find_one({"_id": bargain_id})
    if bargain is None:
        return {"_id": bargain_id}
    summary = {"_id": bargain["_id"]}
    for field in fields:
        summary[field] = bargain.get(field)
    return summary


def populate_order(db: Database, order: dict) -> dict:
    """Copy of the order with product, bargain and buyer summaries attached."""
    out = dict(order)
    items = []
    for line in order.get("items", []):
        line = dict(line)
        line["product"] = product_summary(db[PRODUCTS].find_one({"_id": line["product"]})) or line["product"]
        line["bargain"] = _bargain_summary(db, line.get("bargain"), "proposedPrice", "status")
        items.append(line)
    out["items"] = items
    out["bargainRequest"] = _bargain_summary(db, order.get("bargainRequest"), "proposedPrice", "status", "adminResponse")
    user = db[USERS].find_one({"_id": order["user"]}, {"name": 1, "email": 1})
    out["user"] = user or {"_id": order["user"]}
    return out


def get_order_document(db: Database, order_id) -> dict:
    order = db[ORDERS].find_one({"_id": to_object_id(order_id, "order")})
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_order(db: Database, order_id, caller: Caller) -> dict:
    order = get_order_document(db, order_id)
    if order["user"] != caller.object_id and not caller.is_admin:
        raise AuthorizationError("Not authorized to access this order")
    return order


def list_all_orders(db: Database) -> List[dict]:
    return list(db[ORDERS].find().sort("createdAt", -1))


def list_user_orders(db: Database, caller: Caller) -> List[dict]:
    return list(db[ORDERS].find({"user": caller.object_id}).sort("createdAt", -1))


def _vendor_product_ids(db: Database, caller: Caller) -> List[ObjectId]:
    return db[PRODUCTS].distinct("_id", {"vendorId": caller.object_id})


def list_vendor_orders(db: Database, caller: Caller, limit: Optional[int] = None) -> List[dict]:
    """Orders holding the vendor's products, with items narrowed to those products."""
    product_ids = _vendor_product_ids(db, caller)
    cursor = db[ORDERS].find({"items.product": {"$in": product_ids}}).sort("createdAt", -1)
    if limit:
        cursor = cursor.limit(limit)
    owned = set(product_ids)
    orders = []
    for order in cursor:
        order["items"] = [line for line in order.get("items", []) if line["product"] in owned]
        orders.append(order)
    return orders


def update_order_status(
    db: Database,
    order_id,
    new_status,
    caller: Caller,
    status_message: Optional[str] = None,
) -> dict:
    order = get_order_document(db, order_id)
    if caller.is_vendor:
        owned = set(_vendor_product_ids(db, caller))
        if not any(line["product"] in owned for line in order.get("items", [])):
            raise AuthorizationError("You are not authorized to update this order")
    elif not caller.is_admin:
        raise AuthorizationError("Not authorized - requires admin or vendor role")

    target = next_order_status(order["status"], new_status, strict=get_settings().STRICT_ORDER_TRANSITIONS)
    updated = db[ORDERS].find_one_and_update(
        {"_id": order["_id"], "status": order["status"]},
        {"$set": {"status": target.value, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InvalidStateError("Order changed while updating, please reload it")

    logger.info(f"Order {updated['orderNumber']}: {order['status']} -> {target.value} by {caller.role.value}")
    notify(
        db,
        updated["user"],
        status_message or f"Your order #{updated['orderNumber']} has been updated to {target.value}",
        type=NotificationType.ORDER,
        link=f"/orders/{updated['_id']}",
    )
    return updated


def update_payment_status(db: Database, order_id, payment_status) -> dict:
    order = get_order_document(db, order_id)
    payment_status = PaymentStatus(payment_status)
    db[ORDERS].update_one(
        {"_id": order["_id"]},
        {"$set": {"paymentStatus": payment_status.value, "updatedAt": utcnow()}},
    )
    order["paymentStatus"] = payment_status.value
    if payment_status == PaymentStatus.COMPLETED:
        notify(
            db,
            order["user"],
            f"Payment for order #{order['orderNumber']} has been received",
            type=NotificationType.PAYMENT,
            link=f"/orders/{order['_id']}",
        )
    return order


def update_payment_method(db: Database, order_id, payment_method, caller: Caller) -> dict:
    if not payment_method:
        raise ValidationError("Payment method is required")
    order = get_order_document(db, order_id)
    if order["user"] != caller.object_id:
        raise AuthorizationError("Not authorized to update this order")

    changes = {
        "paymentMethod": PaymentMethod(payment_method).value,
        "paymentSelected": True,
        "paymentSelectedAt": utcnow(),
        "updatedAt": utcnow(),
    }
    db[ORDERS].update_one({"_id": order["_id"]}, {"$set": changes})
    order.update(changes)
    return order
