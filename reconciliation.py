"""
Dependent-order reconciliation.

An order whose whole-order price is under negotiation waits in
awaiting_bargain_approval. Once its governing bargain is resolved the order
is released at the bargained total (accepted) or removed (rejected).
Every write is filtered on awaiting_bargain_approval, so reconciling the same
bargain again changes nothing.
"""
import logging
from typing import Dict, List

from pymongo.database import Database
from pymongo.errors import PyMongoError
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from database import BARGAINS, ORDERS, utcnow
from schemas import BargainStatus, OrderStatus
from settings import get_settings

logger = logging.getLogger(__name__)

AWAITING = OrderStatus.AWAITING_BARGAIN_APPROVAL.value


def apply_bargain_outcome(db: Database, bargain: dict) -> Dict[str, int]:
    """Release or remove the orders waiting on this bargain. Returns counts."""
    waiting = {"bargainRequest": bargain["_id"], "status": AWAITING}
    status = bargain.get("status")

    if status == BargainStatus.ACCEPTED.value:
        result = db[ORDERS].update_many(
            waiting,
            {
                "$set": {
                    "totalAmount": bargain["proposedPrice"],
                    "status": OrderStatus.PENDING.value,
                    "updatedAt": utcnow(),
                }
            },
        )
        return {"released": result.modified_count, "removed": 0}

    if status == BargainStatus.REJECTED.value:
        # the order never became a commitment, so it is deleted rather than cancelled
        result = db[ORDERS].delete_many(waiting)
        return {"released": 0, "removed": result.deleted_count}

    return {"released": 0, "removed": 0}


def remove_waiting_orders(db: Database, bargain_id) -> int:
    result = db[ORDERS].delete_many({"bargainRequest": bargain_id, "status": AWAITING})
    return result.deleted_count


def on_bargain_resolved(db: Database, bargain: dict) -> Dict[str, int]:
    """
    Reconcile the orders governed by a freshly resolved bargain.

    Transient database errors are retried; if every attempt fails the error
    is logged and the orders stay waiting until reconcile_stale_orders runs.
    """
    settings = get_settings()
    retrying = Retrying(
        retry=retry_if_exception_type(PyMongoError),
        stop=stop_after_attempt(settings.RECONCILE_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, max=2),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    try:
        counts = retrying(apply_bargain_outcome, db, bargain)
    except RetryError as e:
        logger.error(
            f"Reconciliation of orders for bargain {bargain['_id']} failed after "
            f"{settings.RECONCILE_MAX_ATTEMPTS} attempts: {e.last_attempt.exception()}"
        )
        return {"released": 0, "removed": 0, "failed": 1}

    if counts["released"] or counts["removed"]:
        logger.info(
            f"Bargain {bargain['_id']} {bargain.get('status')}: "
            f"{counts['released']} order(s) released, {counts['removed']} removed"
        )
    return counts


def reconcile_stale_orders(db: Database) -> Dict[str, int]:
    """Sweep waiting orders whose bargain is already settled or gone."""
    totals = {"checked": 0, "released": 0, "removed": 0}
    bargain_ids: List = db[ORDERS].distinct("bargainRequest", {"status": AWAITING})
    for bargain_id in bargain_ids:
        if bargain_id is None:
            continue
        totals["checked"] += 1
        bargain = db[BARGAINS].find_one({"_id": bargain_id})
        if bargain is None:
            removed = remove_waiting_orders(db, bargain_id)
            logger.warning(f"Removed {removed} order(s) waiting on missing bargain {bargain_id}")
            totals["removed"] += removed
            continue
        counts = apply_bargain_outcome(db, bargain)
        totals["released"] += counts["released"]
        totals["removed"] += counts["removed"]
    return totals
