import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import bargains
import cart
import catalog
import notifications
import orders
import reconciliation
from auth import Caller, get_current_user, require_admin, require_seller, require_vendor
from database import PRODUCTS, db, ensure_indexes, get_db, serialize
from errors import ValidationError
from exception_handlers import register_exception_handlers
from schemas import (
    BargainCreate,
    BargainDecision,
    BargainStatus,
    BargainStatusUpdate,
    CartItemAdd,
    CartItemUpdate,
    CounterOfferCreate,
    OrderCreate,
    OrderStatusUpdate,
    PaymentMethodUpdate,
    PaymentStatusUpdate,
    Product,
    ProductUpdate,
    VendorBargainUpdate,
    VendorResponse,
)
from settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        ensure_indexes(db)
    else:
        logger.warning("DATABASE_URL not set; data endpoints will answer 503")
    yield


app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/")
def read_root():
    return {"message": "Marketplace API is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": settings.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is None:
        return response
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        response["database"] = "⚠️  Configured but not reachable"
    return response


# Seed a few products if the catalog is empty
@app.post("/seed")
def seed(database: Database = Depends(get_db), caller: Caller = Depends(require_admin)):
    if database[PRODUCTS].count_documents({}) == 0:
        sample = [
            Product(
                name="Wireless Headphones",
                description="Noise-cancelling over-ear headphones",
                price=12999,
                category="electronics",
                images=["https://images.unsplash.com/photo-1512314889357-e157c22f938d"],
                stock=25,
            ),
            Product(
                name="Stainless Cookware Set",
                description="10-piece pots and pans set",
                price=8900,
                category="home-kitchen",
                images=["https://images.unsplash.com/photo-1514517220039-39c7b53c0b18"],
                stock=40,
            ),
            Product(
                name="Handwoven Dhaka Shawl",
                description="Traditional woven shawl",
                price=2450,
                category="clothing",
                images=["https://images.unsplash.com/photo-1520975916090-3105956dac38"],
                stock=60,
            ),
        ]
        for p in sample:
            catalog.create_product(database, p, caller)
    return {"status": "ok"}


# Catalog endpoints
@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    q: Optional[str] = None,
    database: Database = Depends(get_db),
):
    return serialize(catalog.list_products(database, category, q))


@app.get("/api/products/{product_id}")
def get_product(product_id: str, database: Database = Depends(get_db)):
    return serialize(catalog.get_product(database, product_id))


@app.post("/api/products", status_code=201)
def create_product(
    payload: Product,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_seller),
):
    return serialize(catalog.create_product(database, payload, caller))


@app.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    payload: ProductUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_seller),
):
    return serialize(catalog.update_product(database, product_id, payload, caller))


@app.delete("/api/products/{product_id}")
def delete_product(
    product_id: str,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_seller),
):
    catalog.delete_product(database, product_id, caller)
    return {"message": "Product removed"}


# Bargain endpoints
@app.post("/api/bargains", status_code=201)
def create_bargain(
    payload: BargainCreate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(get_current_user),
):
    bargain = bargains.create_bargain(database, caller, payload.productId, payload.proposedPrice)
    return serialize(bargains.populate_bargain(database, bargain))


@app.get("/api/bargains/all")
def list_all_bargains(database: Database = Depends(get_db), caller: Caller = Depends(require_admin)):
    return serialize([bargains.populate_bargain(database, b) for b in bargains.list_all_bargains(database)])


@app.get("/api/bargains/user")
def list_user_bargains(database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    return serialize([bargains.populate_bargain(database, b) for b in bargains.list_user_bargains(database, caller)])


@app.patch("/api/bargains/{bargain_id}/status")
def update_bargain_status(
    bargain_id: str,
    payload: BargainStatusUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_admin),
):
    decisions = {BargainStatus.ACCEPTED: BargainDecision.ACCEPT, BargainStatus.REJECTED: BargainDecision.REJECT}
    if payload.status not in decisions:
        raise ValidationError("Invalid status. Must be accepted or rejected")
    bargain = bargains.resolve_bargain(
        database, bargain_id, caller, decisions[payload.status], note=payload.adminResponse
    )
    return {
        "message": f"Bargain {payload.status.value} successfully",
        "bargain": serialize(bargains.populate_bargain(database, bargain)),
    }


@app.delete("/api/bargains/{bargain_id}")
def cancel_bargain(
    bargain_id: str,
    database: Database = Depends(get_db),
    caller: Caller = Depends(get_current_user),
):
    bargains.cancel_bargain(database, bargain_id, caller)
    return {"message": "Bargain request cancelled successfully"}


# Vendor back-office
@app.get("/api/vendor/products")
def list_vendor_products(database: Database = Depends(get_db), caller: Caller = Depends(require_vendor)):
    return serialize(catalog.list_vendor_products(database, caller))


@app.get("/api/vendor/bargains")
def list_vendor_bargains(database: Database = Depends(get_db), caller: Caller = Depends(require_vendor)):
    return serialize([bargains.populate_bargain(database, b) for b in bargains.list_vendor_bargains(database, caller)])


@app.post("/api/vendor/bargains/{bargain_id}/accept")
def vendor_accept_bargain(
    bargain_id: str,
    payload: Optional[VendorResponse] = None,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_vendor),
):
    note = payload.message if payload else None
    return serialize(bargains.resolve_bargain(database, bargain_id, caller, BargainDecision.ACCEPT, note=note))


@app.post("/api/vendor/bargains/{bargain_id}/reject")
def vendor_reject_bargain(
    bargain_id: str,
    payload: Optional[VendorResponse] = None,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_vendor),
):
    note = payload.message if payload else None
    return serialize(bargains.resolve_bargain(database, bargain_id, caller, BargainDecision.REJECT, note=note))


@app.post("/api/vendor/bargains/{bargain_id}/counter")
def vendor_counter_bargain(
    bargain_id: str,
    payload: CounterOfferCreate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_vendor),
):
    bargain = bargains.resolve_bargain(
        database,
        bargain_id,
        caller,
        BargainDecision.COUNTER,
        note=payload.message,
        counter_offer=payload.counterOffer,
    )
    return serialize(bargain)



@app.put("/api/vendor/bargains/{bargain_id}")
def vendor_update_bargain(
    bargain_id: str,
    payload: VendorBargainUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_vendor),
):
    decisions = {
        BargainStatus.ACCEPTED: BargainDecision.ACCEPT,
        BargainStatus.REJECTED: BargainDecision.REJECT,
        BargainStatus.COUNTERED: BargainDecision.COUNTER,
    }
    if payload.status not in decisions:
        raise ValidationError("Invalid status")
    bargain = bargains.resolve_bargain(
        database,
        bargain_id,
        caller,
        decisions[payload.status],
        note=payload.message,
        counter_offer=payload.counterOffer,
    )
    return serialize(bargain)


@app.get("/api/vendor/orders")
def list_vendor_orders(
    limit: Optional[int] = None,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_vendor),
):
    return serialize([orders.populate_order(database, o) for o in orders.list_vendor_orders(database, caller, limit)])


@app.put("/api/vendor/orders/{order_id}/status")
def vendor_update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_vendor),
):
    order = orders.update_order_status(database, order_id, payload.status, caller, payload.statusMessage)
    return serialize(order)


@app.get("/api/vendor/notifications")
def list_vendor_notifications(database: Database = Depends(get_db), caller: Caller = Depends(require_vendor)):
    return serialize(notifications.list_notifications(database, caller))


@app.put("/api/vendor/notifications/mark-all-read")
def mark_vendor_notifications_read(database: Database = Depends(get_db), caller: Caller = Depends(require_vendor)):
    notifications.mark_all_read(database, caller)
    return {"message": "All notifications marked as read"}


# Cart
@app.get("/api/cart")
def get_cart(database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    return serialize(cart.populate_cart(database, cart.get_cart(database, caller)))


@app.post("/api/cart/add")
def add_to_cart(
    payload: CartItemAdd,
    database: Database = Depends(get_db),
    caller: Caller = Depends(get_current_user),
):
    updated = cart.add_item(database, caller, payload.productId, payload.quantity)
    return serialize(cart.populate_cart(database, updated))


@app.patch("/api/cart/update/{product_id}")
def update_cart_item(
    product_id: str,
    payload: CartItemUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(get_current_user),
):
    updated = cart.update_item(database, caller, product_id, payload.quantity)
    return serialize(cart.populate_cart(database, updated))


@app.delete("/api/cart/remove/{product_id}")
def remove_cart_item(product_id: str, database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    return serialize(cart.populate_cart(database, cart.remove_item(database, caller, product_id)))


@app.delete("/api/cart/clear")
def clear_cart(database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    cart.clear_cart(database, caller)
    return {"message": "Cart cleared successfully"}


# Orders
@app.post("/api/orders", status_code=201)
def create_order(
    payload: OrderCreate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(get_current_user),
):
    return serialize(orders.create_order(database, caller, payload))


@app.get("/api/orders/all")
def list_all_orders(database: Database = Depends(get_db), caller: Caller = Depends(require_admin)):
    return serialize([orders.populate_order(database, o) for o in orders.list_all_orders(database)])


@app.get("/api/orders/user")
def list_user_orders(database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    return serialize([orders.populate_order(database, o) for o in orders.list_user_orders(database, caller)])


@app.post("/api/orders/reconcile")
def reconcile_orders(database: Database = Depends(get_db), caller: Caller = Depends(require_admin)):
    return reconciliation.reconcile_stale_orders(database)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    return serialize(orders.populate_order(database, orders.get_order(database, order_id, caller)))


@app.patch("/api/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_admin),
):
    order = orders.update_order_status(database, order_id, payload.status, caller, payload.statusMessage)
    return serialize(order)


@app.patch("/api/orders/{order_id}/payment")
def update_payment_status(
    order_id: str,
    payload: PaymentStatusUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(require_admin),
):
    return serialize(orders.update_payment_status(database, order_id, payload.paymentStatus))


@app.patch("/api/orders/{order_id}/payment-method")
def update_payment_method(
    order_id: str,
    payload: PaymentMethodUpdate,
    database: Database = Depends(get_db),
    caller: Caller = Depends(get_current_user),
):
    return serialize(orders.update_payment_method(database, order_id, payload.paymentMethod, caller))


# Notifications
@app.get("/api/notifications")
def list_notifications(database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    return serialize(notifications.list_notifications(database, caller))


@app.put("/api/notifications/mark-all-read")
def mark_all_notifications_read(database: Database = Depends(get_db), caller: Caller = Depends(get_current_user)):
    notifications.mark_all_read(database, caller)
    return {"message": "All notifications marked as read"}


@app.put("/api/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    database: Database = Depends(get_db),
    caller: Caller = Depends(get_current_user),
):
    return serialize(notifications.mark_read(database, notification_id, caller))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
