"""Pharmacy acceptance and rejection: commands and handler.

A rejection is never a dead end: the order is immediately offered to the next
best pharmacy in the same unit of work.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from pharmacy.assignment.engine import AssignmentEngine
from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder
from pharmacy.pharmacy.access import authorize_staff
from pharmacy.pharmacy.pharmacy import StaffPermission

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="PharmacyOrder")
class AcceptOrder:
    """A pharmacist takes on an assigned order."""

    order_id = Identifier(required=True)
    staff_id = Identifier(required=True)


@pharmacy.command(part_of="PharmacyOrder")
class RejectOrder:
    """A pharmacist declines an assigned order."""

    order_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)


@pharmacy.command_handler(part_of=PharmacyOrder)
class AcceptanceHandler:
    @handle(AcceptOrder)
    def accept_order(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        authorize_staff(order.pharmacy_id, command.staff_id, StaffPermission.ACCEPT_ORDERS)

        expected = order.current_status
        order.accept(command.staff_id)
        repo.save_transition(order, expected)
        logger.info("Order accepted", order_id=str(order.id), staff_id=command.staff_id)
        return order

    @handle(RejectOrder)
    def reject_order(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        ph, _ = authorize_staff(order.pharmacy_id, command.staff_id, StaffPermission.ACCEPT_ORDERS)

        expected = order.current_status
        order.reject(command.reason, staff_id=command.staff_id)
        logger.info(
            "Order rejected by pharmacy",
            order_id=str(order.id),
            pharmacy_id=str(ph.id),
            staff_id=command.staff_id,
            reason=command.reason,
        )

        engine = AssignmentEngine()
        engine.track(ph)
        result = engine.reassign(order, command.reason)
        repo.save_transition(order, expected)
        return result
