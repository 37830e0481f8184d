"""
Transition tables for bargains and orders.

All status changes go through next_bargain_status / next_order_status so an
illegal move is rejected in one place.
"""
from typing import Dict, FrozenSet, Tuple

from errors import InvalidStateError
from schemas import BargainDecision, BargainStatus, OrderStatus

BARGAIN_TRANSITIONS: Dict[Tuple[BargainStatus, BargainDecision], BargainStatus] = {
    (BargainStatus.PENDING, BargainDecision.ACCEPT): BargainStatus.ACCEPTED,
    (BargainStatus.PENDING, BargainDecision.REJECT): BargainStatus.REJECTED,
    (BargainStatus.PENDING, BargainDecision.COUNTER): BargainStatus.COUNTERED,
}

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    # left through bargain reconciliation; by hand only cancellation
    OrderStatus.AWAITING_BARGAIN_APPROVAL: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_ORDER_STATUSES = frozenset(s for s, targets in ORDER_TRANSITIONS.items() if not targets)


def next_bargain_status(current, decision) -> BargainStatus:
    current = BargainStatus(current)
    decision = BargainDecision(decision)
    try:
        return BARGAIN_TRANSITIONS[(current, decision)]
    except KeyError:
        if current == BargainStatus.PENDING:
            raise InvalidStateError(f"Cannot {decision.value} a pending bargain")
        raise InvalidStateError("Cannot update a bargain that is not pending")


def next_order_status(current, target, strict: bool = True) -> OrderStatus:
    """
    Validate a manual order status change and return the new status.

    With strict=False any status may follow any other, except that an order
    can never be put into awaiting_bargain_approval by hand.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)
    if target == OrderStatus.AWAITING_BARGAIN_APPROVAL and current != target:
        raise InvalidStateError("Orders enter awaiting_bargain_approval only at checkout")
    if not strict:
        return target
    if target not in ORDER_TRANSITIONS[current]:
        raise InvalidStateError(f"Cannot move order from {current.value} to {target.value}")
    return target
