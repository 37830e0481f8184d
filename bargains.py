"""
Negotiation engine.

A bargain is a buyer's request for a custom price, either on one product or
on a whole order (cart). It is created pending and leaves that state exactly
once, when a seller accepts, rejects or counters it. The pending -> resolved
write is a conditional update on status == "pending", so two sellers racing
on the same bargain cannot both win.
"""
import logging
import math
from typing import Iterable, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import Caller
from catalog import get_product, product_summary
from database import BARGAINS, PRODUCTS, USERS, create_document, get_documents, to_object_id, utcnow
from errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from notifications import notify
from reconciliation import on_bargain_resolved, remove_waiting_orders
from schemas import (
    BargainDecision,
    BargainItem,
    BargainScope,
    BargainStatus,
    NotificationType,
    SingleProduct,
    WholeOrder,
)
from settings import get_settings
from workflow import next_bargain_status

logger = logging.getLogger(__name__)

PENDING = BargainStatus.PENDING.value


def format_amount(value) -> str:
    return ("%.2f" % float(value)).rstrip("0").rstrip(".")


def scope_of(bargain: dict) -> BargainScope:
    if bargain.get("product") is not None:
        return SingleProduct(productId=str(bargain["product"]))
    return WholeOrder(
        items=[
            BargainItem(productId=str(item["productId"]), quantity=item.get("quantity", 1), price=item.get("price"))
            for item in bargain.get("items", [])
        ]
    )


def validate_proposal(proposed_price, original_price: float) -> float:
    """A proposal must be a positive discount on the original price."""
    try:
        proposed = float(proposed_price)
    except (TypeError, ValueError):
        raise ValidationError("Proposed price must be a number")
    if not math.isfinite(proposed):
        raise ValidationError("Proposed price must be a finite number")
    if proposed <= 0:
        raise ValidationError("Proposed price must be greater than zero")
    if proposed >= original_price:
        raise ValidationError("Proposed price must be lower than the original price")
    return proposed


def _user_summary(db: Database, user_id) -> dict:
    user = db[USERS].find_one({"_id": user_id}, {"name": 1, "email": 1})
    return user or {"_id": user_id}


def populate_bargain(db: Database, bargain: dict) -> dict:
    """Copy of the bargain with product and user summaries attached for display."""
    out = dict(bargain)
    if bargain.get("product") is not None:
        out["product"] = product_summary(db[PRODUCTS].find_one({"_id": bargain["product"]})) or bargain["product"]
    out["user"] = _user_summary(db, bargain["user"])
    return out


def create_bargain(db: Database, caller: Caller, product_id, proposed_price) -> dict:
    product = get_product(db, product_id)
    proposed = validate_proposal(proposed_price, product["price"])

    existing = db[BARGAINS].find_one({"product": product["_id"], "user": caller.object_id, "status": PENDING})
    if existing:
        raise ConflictError("You already have a pending bargain request for this product")

    bargain = {
        "product": product["_id"],
        "user": caller.object_id,
        "originalPrice": product["price"],
        "proposedPrice": proposed,
        "items": [],
        "status": PENDING,
        "counterOffer": None,
        "messages": [],
    }
    try:
        create_document(BARGAINS, bargain, database=db)
    except DuplicateKeyError:
        raise ConflictError("You already have a pending bargain request for this product")
    logger.info(f"Bargain {bargain['_id']} created by {caller.id} on product {product['_id']}: {proposed}")
    return bargain


def create_order_level_bargain(db: Database, buyer_id, items: Iterable[dict], proposed_price) -> dict:
    """
    Open a whole-order bargain over a cart snapshot.

    items are dicts with productId, quantity and price (the line price).
    """
    snapshot = [
        {"productId": to_object_id(item["productId"], "product"), "quantity": item["quantity"], "price": item["price"]}
        for item in items
    ]
    if not snapshot:
        raise ValidationError("Items array is required and cannot be empty")
    original = round(sum(item["price"] * item["quantity"] for item in snapshot), 2)
    proposed = validate_proposal(proposed_price, original)

    bargain = {
        "user": to_object_id(buyer_id, "user"),
        "originalPrice": original,
        "proposedPrice": proposed,
        "items": snapshot,
        "status": PENDING,
        "counterOffer": None,
        "messages": [],
    }
    create_document(BARGAINS, bargain, database=db)
    logger.info(f"Whole-order bargain {bargain['_id']} created by {buyer_id}: {proposed} of {original}")
    return bargain


def get_bargain(db: Database, bargain_id) -> dict:
    bargain = db[BARGAINS].find_one({"_id": to_object_id(bargain_id, "bargain")})
    if not bargain:
        raise NotFoundError("Bargain request not found")
    return bargain


def list_all_bargains(db: Database) -> List[dict]:
    return get_documents(BARGAINS, database=db)


def list_user_bargains(db: Database, caller: Caller) -> List[dict]:
    return get_documents(BARGAINS, {"user": caller.object_id}, database=db)


def list_vendor_bargains(db: Database, caller: Caller) -> List[dict]:
    product_ids = db[PRODUCTS].distinct("_id", {"vendorId": caller.object_id})
    owned = set(product_ids)
    candidates = get_documents(
        BARGAINS,
        {"$or": [{"product": {"$in": product_ids}}, {"items.productId": {"$in": product_ids}}]},
        database=db,
    )
    # whole-order bargains are listed only when the vendor can resolve them
    return [
        bargain
        for bargain in candidates
        if bargain.get("product") is not None or all(item["productId"] in owned for item in bargain.get("items", []))
    ]


def _authorize_resolution(db: Database, bargain: dict, caller: Caller) -> None:
    if caller.is_admin:
        return
    if not caller.is_vendor:
        raise AuthorizationError("Only admins and vendors can respond to bargain requests")

    scope = scope_of(bargain)
    if isinstance(scope, SingleProduct):
        product_ids = [bargain["product"]]
    else:
        product_ids = [to_object_id(item.productId, "product") for item in scope.items]

    for product_id in product_ids:
        product = db[PRODUCTS].find_one({"_id": product_id})
        if not product:
            raise NotFoundError("Product not found")
        if product.get("vendorId") != caller.object_id:
            raise AuthorizationError("You are not authorized to handle this bargain request")


def _validate_counter(bargain: dict, caller: Caller, counter_offer) -> float:
    if not caller.is_vendor:
        raise AuthorizationError("Only vendors can make counter offers")
    if bargain.get("product") is None:
        raise ValidationError("Counter offers are only possible on single-product bargains")
    try:
        amount = float(counter_offer)
    except (TypeError, ValueError):
        raise ValidationError("Valid counter offer amount required")
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Valid counter offer amount required")
    if not bargain["proposedPrice"] < amount < bargain["originalPrice"]:
        raise ValidationError("Valid counter offer amount required")
    return amount


def _outcome_message(db: Database, bargain: dict) -> str:
    currency = get_settings().CURRENCY_LABEL
    if bargain.get("product") is not None:
        product = db[PRODUCTS].find_one({"_id": bargain["product"]})
        subject = product["name"] if product else "your item"
    else:
        subject = "your order"
    offer = f"{currency} {format_amount(bargain['proposedPrice'])}"

    status = bargain["status"]
    if status == BargainStatus.ACCEPTED.value:
        return f"Your offer of {offer} for {subject} has been accepted!"
    if status == BargainStatus.REJECTED.value:
        return f"Your offer of {offer} for {subject} has been rejected."
    return f"The vendor has countered your offer for {subject} with {currency} {format_amount(bargain['counterOffer'])}."


def resolve_bargain(
    db: Database,
    bargain_id,
    caller: Caller,
    decision,
    note: Optional[str] = None,
    counter_offer=None,
) -> dict:
    """
    Accept, reject or counter a pending bargain.

    Admins may accept or reject any bargain; vendors may also counter, but
    only on bargains over their own products. Orders waiting on the bargain
    are reconciled and the buyer is notified, whoever resolved it.
    """
    decision = BargainDecision(decision)
    bargain = get_bargain(db, bargain_id)
    _authorize_resolution(db, bargain, caller)
    new_status = next_bargain_status(bargain["status"], decision)

    changes = {"status": new_status.value, "updatedAt": utcnow()}
    if decision == BargainDecision.COUNTER:
        changes["counterOffer"] = _validate_counter(bargain, caller, counter_offer)
    update = {"$set": changes}
    if note:
        changes["adminResponse" if caller.is_admin else "vendorResponse"] = note
        update["$push"] = {"messages": {"senderId": caller.object_id, "message": note, "timestamp": utcnow()}}

    updated = db[BARGAINS].find_one_and_update(
        {"_id": bargain["_id"], "status": PENDING},
        update,
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # lost the race against another resolution or a cancellation
        current = get_bargain(db, bargain["_id"])
        next_bargain_status(current["status"], decision)
        raise ConflictError("Bargain was modified concurrently, please retry")

    logger.info(f"Bargain {updated['_id']} {updated['status']} by {caller.role.value} {caller.id}")

    on_bargain_resolved(db, updated)
    notify(
        db,
        updated["user"],
        _outcome_message(db, updated),
        type=NotificationType.BARGAIN,
        link=f"/bargain/{updated['_id']}",
    )
    return updated


def cancel_bargain(db: Database, bargain_id, caller: Caller) -> None:
    bargain = get_bargain(db, bargain_id)
    if bargain["user"] != caller.object_id:
        raise AuthorizationError("You are not authorized to cancel this bargain request")

    result = db[BARGAINS].delete_one({"_id": bargain["_id"], "user": caller.object_id, "status": PENDING})
    if result.deleted_count == 0:
        raise InvalidStateError("This bargain request has already been processed")

    if bargain.get("product") is None:
        removed = remove_waiting_orders(db, bargain["_id"])
        if removed:
            logger.info(f"Removed {removed} order(s) waiting on cancelled bargain {bargain['_id']}")
    logger.info(f"Bargain {bargain['_id']} cancelled by {caller.id}")
