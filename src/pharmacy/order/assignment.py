"""Order assignment: commands and handler.

AssignPharmacy opens a new order for a prescription; ReassignPharmacy moves an
existing order away from its pharmacy (after a rejection, a stock issue, or
an SLA breach) to the next best one.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from pharmacy.assignment.engine import AssignmentEngine
from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="PharmacyOrder")
class AssignPharmacy:
    """Create an order for a prescription and place it with a pharmacy."""

    prescription_id = Identifier(required=True)
    exclude_pharmacy_ids = Text()  # JSON list of pharmacy ids
    replacement_for_order_id = Identifier()


@pharmacy.command(part_of="PharmacyOrder")
class ReassignPharmacy:
    """Move an order to a different pharmacy."""

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)


@pharmacy.command_handler(part_of=PharmacyOrder)
class AssignmentHandler:
    @handle(AssignPharmacy)
    def assign_pharmacy(self, command):
        excluded = json.loads(command.exclude_pharmacy_ids) if command.exclude_pharmacy_ids else []
        return AssignmentEngine().assign(
            command.prescription_id,
            exclude_pharmacy_ids=excluded,
            replacement_for_order_id=command.replacement_for_order_id,
        )

    @handle(ReassignPharmacy)
    def reassign_pharmacy(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        result = AssignmentEngine().reassign(order, command.reason)
        repo.save_transition(order, expected)
        return result
