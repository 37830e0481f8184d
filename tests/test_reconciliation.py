import logging

import pytest
from pymongo.errors import AutoReconnect

import bargains
import orders
import reconciliation
from database import BARGAINS, ORDERS
from schemas import OrderCreate
from settings import get_settings


@pytest.fixture
def waiting_order(db, buyer, lamp, rug):
    payload = OrderCreate(
        items=[{"product": str(lamp["_id"]), "quantity": 3}, {"product": str(rug["_id"]), "quantity": 1}],
        proposedPrice=400,
    )
    return orders.create_order(db, buyer, payload)


def test_accepted_bargain_releases_order(db, admin, waiting_order):
    bargains.resolve_bargain(db, waiting_order["bargainRequest"], admin, "accept", note="deal")

    order = db[ORDERS].find_one({"_id": waiting_order["_id"]})
    assert order["status"] == "pending"
    assert order["totalAmount"] == 400.0
    # line prices keep their own values
    assert [line["price"] for line in order["items"]] == [100.0, 200.0]


def test_rejected_bargain_removes_order(db, admin, waiting_order):
    bargains.resolve_bargain(db, waiting_order["bargainRequest"], admin, "reject")

    assert db[ORDERS].find_one({"_id": waiting_order["_id"]}) is None


def test_vendor_resolution_also_reconciles(db, vendor, waiting_order):
    bargains.resolve_bargain(db, waiting_order["bargainRequest"], vendor, "accept")

    order = db[ORDERS].find_one({"_id": waiting_order["_id"]})
    assert order["status"] == "pending"
    assert order["totalAmount"] == 400.0


def test_reconciliation_is_idempotent(db, admin, waiting_order):
    bargain = bargains.resolve_bargain(db, waiting_order["bargainRequest"], admin, "accept")
    first = db[ORDERS].find_one({"_id": waiting_order["_id"]})

    counts = reconciliation.on_bargain_resolved(db, bargain)

    assert counts == {"released": 0, "removed": 0}
    assert db[ORDERS].find_one({"_id": waiting_order["_id"]}) == first


def test_reconciliation_leaves_progressed_orders_alone(db, admin, waiting_order):
    bargain = bargains.resolve_bargain(db, waiting_order["bargainRequest"], admin, "accept")
    orders.update_order_status(db, str(waiting_order["_id"]), "processing", admin)

    reconciliation.apply_bargain_outcome(db, dict(bargain, status="rejected"))

    assert db[ORDERS].find_one({"_id": waiting_order["_id"]})["status"] == "processing"


def test_pending_bargain_changes_nothing(db, waiting_order):
    bargain = db[BARGAINS].find_one({"_id": waiting_order["bargainRequest"]})

    assert reconciliation.apply_bargain_outcome(db, bargain) == {"released": 0, "removed": 0}
    assert db[ORDERS].find_one({"_id": waiting_order["_id"]})["status"] == "awaiting_bargain_approval"


def test_transient_errors_are_retried(db, admin, waiting_order, monkeypatch):
    real_apply = reconciliation.apply_bargain_outcome
    calls = []

    def flaky(database, bargain):
        calls.append(1)
        if len(calls) < 2:
            raise AutoReconnect("primary stepped down")
        return real_apply(database, bargain)

    monkeypatch.setattr(reconciliation, "apply_bargain_outcome", flaky)

    bargains.resolve_bargain(db, waiting_order["bargainRequest"], admin, "accept")

    assert len(calls) == 2
    assert db[ORDERS].find_one({"_id": waiting_order["_id"]})["status"] == "pending"


def test_exhausted_retries_are_logged_and_swept_later(db, admin, waiting_order, monkeypatch, caplog):
    monkeypatch.setattr(get_settings(), "RECONCILE_MAX_ATTEMPTS", 2)

    def broken(database, bargain):
        raise AutoReconnect("no primary")

    monkeypatch.setattr(reconciliation, "apply_bargain_outcome", broken)

    with caplog.at_level(logging.ERROR, logger="reconciliation"):
        bargain = bargains.resolve_bargain(db, waiting_order["bargainRequest"], admin, "accept")

    assert bargain["status"] == "accepted"
    assert db[ORDERS].find_one({"_id": waiting_order["_id"]})["status"] == "awaiting_bargain_approval"
    assert any("failed after 2 attempts" in r.getMessage() for r in caplog.records)

    monkeypatch.undo()
    totals = reconciliation.reconcile_stale_orders(db)

    assert totals == {"checked": 1, "released": 1, "removed": 0}
    assert db[ORDERS].find_one({"_id": waiting_order["_id"]})["status"] == "pending"


def test_sweep_removes_orders_of_vanished_bargains(db, waiting_order):
    db[BARGAINS].delete_one({"_id": waiting_order["bargainRequest"]})

    totals = reconciliation.reconcile_stale_orders(db)

    assert totals == {"checked": 1, "released": 0, "removed": 1}
    assert db[ORDERS].count_documents({}) == 0


def test_sweep_keeps_orders_still_negotiating(db, waiting_order):
    totals = reconciliation.reconcile_stale_orders(db)

    assert totals == {"checked": 1, "released": 0, "removed": 0}
    assert db[ORDERS].count_documents({"status": "awaiting_bargain_approval"}) == 1
