"""Order cancellation: command and handler.

Cancelling an order that still occupies a pharmacy slot frees the slot.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder
from pharmacy.pharmacy.pharmacy import Pharmacy

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="PharmacyOrder")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)
    cancelled_by = Identifier()


@pharmacy.command_handler(part_of=PharmacyOrder)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        releases_slot = order.holds_pharmacy_slot

        order.cancel(command.reason, cancelled_by=command.cancelled_by)

        if releases_slot:
            pharmacy_repo = current_domain.repository_for(Pharmacy)
            ph = pharmacy_repo.get(order.pharmacy_id)
            ph.release_slot()
            pharmacy_repo.add(ph)

        repo.save_transition(order, expected)
        logger.info("Order cancelled", order_id=str(order.id), reason=command.reason)
        return order
