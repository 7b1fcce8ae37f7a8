"""Order workflow: the status vocabulary and the legal transitions between statuses.

Every status change on a PharmacyOrder is checked against VALID_TRANSITIONS.
A status with an empty set is terminal.
"""

from enum import Enum


class OrderStatus(Enum):
    PENDING_ASSIGNMENT = "Pending_Assignment"
    ASSIGNED = "Assigned"
    PHARMACY_ACCEPTED = "Pharmacy_Accepted"
    PHARMACY_REJECTED = "Pharmacy_Rejected"
    PREPARING = "Preparing"
    STOCK_ISSUE = "Stock_Issue"
    AWAITING_SUBSTITUTION_APPROVAL = "Awaiting_Substitution_Approval"
    READY_FOR_PICKUP = "Ready_For_Pickup"
    OUT_FOR_DELIVERY = "Out_For_Delivery"
    DELIVERY_ATTEMPTED = "Delivery_Attempted"
    DELIVERED = "Delivered"
    DELIVERY_FAILED = "Delivery_Failed"
    CANCELLED = "Cancelled"
    DAMAGE_REPORTED = "Damage_Reported"
    DAMAGE_APPROVED = "Damage_Approved"
    RETURN_ACCEPTED = "Return_Accepted"
    COLD_CHAIN_BREACH = "Cold_Chain_Breach"


S = OrderStatus

VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING_ASSIGNMENT: frozenset({S.ASSIGNED, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.PHARMACY_ACCEPTED, S.PHARMACY_REJECTED, S.CANCELLED}),
    S.PHARMACY_ACCEPTED: frozenset({S.PREPARING, S.STOCK_ISSUE, S.CANCELLED}),
    S.PHARMACY_REJECTED: frozenset({S.PENDING_ASSIGNMENT}),
    S.PREPARING: frozenset({S.READY_FOR_PICKUP, S.STOCK_ISSUE, S.CANCELLED}),
    S.STOCK_ISSUE: frozenset({S.AWAITING_SUBSTITUTION_APPROVAL, S.PENDING_ASSIGNMENT, S.CANCELLED}),
    S.AWAITING_SUBSTITUTION_APPROVAL: frozenset({S.PREPARING, S.STOCK_ISSUE, S.CANCELLED}),
    S.READY_FOR_PICKUP: frozenset({S.OUT_FOR_DELIVERY, S.CANCELLED}),
    S.OUT_FOR_DELIVERY: frozenset({S.DELIVERY_ATTEMPTED, S.DELIVERED, S.DELIVERY_FAILED}),
    S.DELIVERY_ATTEMPTED: frozenset({S.OUT_FOR_DELIVERY, S.DELIVERY_FAILED}),
    S.DELIVERED: frozenset({S.DAMAGE_REPORTED, S.RETURN_ACCEPTED, S.COLD_CHAIN_BREACH}),
    S.DELIVERY_FAILED: frozenset({S.OUT_FOR_DELIVERY, S.CANCELLED}),
    S.DAMAGE_REPORTED: frozenset({S.DAMAGE_APPROVED, S.CANCELLED}),
    S.CANCELLED: frozenset(),
    S.DAMAGE_APPROVED: frozenset(),
    S.RETURN_ACCEPTED: frozenset(),
    S.COLD_CHAIN_BREACH: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in VALID_TRANSITIONS.items() if not targets)

# Statuses in which the patient may still change where the order goes
PRE_DISPATCH_STATUSES = frozenset(
    {
        S.PENDING_ASSIGNMENT,
        S.ASSIGNED,
        S.PHARMACY_ACCEPTED,
        S.PHARMACY_REJECTED,
        S.PREPARING,
        S.STOCK_ISSUE,
        S.AWAITING_SUBSTITUTION_APPROVAL,
        S.READY_FOR_PICKUP,
    }
)

# Statuses in which the order occupies a slot in its pharmacy's daily queue
SLOT_HOLDING_STATUSES = frozenset(
    {
        S.ASSIGNED,
        S.PHARMACY_ACCEPTED,
        S.PREPARING,
        S.STOCK_ISSUE,
        S.AWAITING_SUBSTITUTION_APPROVAL,
        S.READY_FOR_PICKUP,
        S.OUT_FOR_DELIVERY,
        S.DELIVERY_ATTEMPTED,
        S.DELIVERY_FAILED,
    }
)

# Not yet delivered, not terminal: the order is still on the clock
IN_FLIGHT_STATUSES = frozenset(
    VALID_TRANSITIONS.keys() - TERMINAL_STATUSES - {S.DELIVERED, S.DAMAGE_REPORTED}
)

STATUS_TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    S.PENDING_ASSIGNMENT: "pending_assignment_at",
    S.ASSIGNED: "assigned_at",
    S.PHARMACY_ACCEPTED: "accepted_at",
    S.PHARMACY_REJECTED: "rejected_at",
    S.PREPARING: "preparing_at",
    S.STOCK_ISSUE: "stock_issue_at",
    S.AWAITING_SUBSTITUTION_APPROVAL: "stock_issue_at",
    S.READY_FOR_PICKUP: "ready_for_pickup_at",
    S.OUT_FOR_DELIVERY: "dispatched_at",
    S.DELIVERY_ATTEMPTED: "delivery_attempted_at",
    S.DELIVERED: "delivered_at",
    S.DELIVERY_FAILED: "delivery_failed_at",
    S.CANCELLED: "cancelled_at",
    S.DAMAGE_REPORTED: "damage_reported_at",
    S.DAMAGE_APPROVED: "damage_approved_at",
    S.RETURN_ACCEPTED: "returned_at",
    S.COLD_CHAIN_BREACH: "cold_chain_breach_at",
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES
