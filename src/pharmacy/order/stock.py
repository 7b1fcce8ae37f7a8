"""Stock issues and substitutions: commands and handler.

When a pharmacy cannot fill an item it reports a stock issue, which also
marks those items out of stock in its inventory. A pharmacist can then propose
a substitute; only the prescribing doctor can approve or reject it.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder
from pharmacy.pharmacy.access import authorize_staff
from pharmacy.pharmacy.pharmacy import Pharmacy, StaffPermission

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="PharmacyOrder")
class ReportStockIssue:
    """Report prescribed items the pharmacy cannot supply."""

    order_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    missing_items = Text(required=True)  # JSON list of medication names


@pharmacy.command(part_of="PharmacyOrder")
class ProposeSubstitution:
    """Ask the prescriber to approve a substitute medication."""

    order_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    original_medication = String(required=True, max_length=255)
    substitute_medication = String(required=True, max_length=255)
    reason = String(required=True, max_length=1000)


@pharmacy.command(part_of="PharmacyOrder")
class ApproveSubstitution:
    order_id = Identifier(required=True)
    doctor_id = Identifier(required=True)


@pharmacy.command(part_of="PharmacyOrder")
class RejectSubstitution:
    order_id = Identifier(required=True)
    doctor_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)


@pharmacy.command_handler(part_of=PharmacyOrder)
class StockHandler:
    @handle(ReportStockIssue)
    def report_stock_issue(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        ph, _ = authorize_staff(order.pharmacy_id, command.staff_id, StaffPermission.ACCEPT_ORDERS)

        missing_items = json.loads(command.missing_items)
        expected = order.current_status
        order.report_stock_issue(command.staff_id, missing_items)
        ph.mark_out_of_stock(missing_items, updated_by=command.staff_id)

        repo.save_transition(order, expected)
        current_domain.repository_for(Pharmacy).add(ph)
        logger.info(
            "Stock issue reported",
            order_id=str(order.id),
            pharmacy_id=str(ph.id),
            missing_items=missing_items,
        )
        return order

    @handle(ProposeSubstitution)
    def propose_substitution(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        authorize_staff(order.pharmacy_id, command.staff_id, StaffPermission.PHARMACIST)

        expected = order.current_status
        order.propose_substitution(
            staff_id=command.staff_id,
            original_medication=command.original_medication,
            substitute_medication=command.substitute_medication,
            reason=command.reason,
        )
        repo.save_transition(order, expected)
        return order

    @handle(ApproveSubstitution)
    def approve_substitution(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        order.approve_substitution(command.doctor_id)
        repo.save_transition(order, expected)
        return order

    @handle(RejectSubstitution)
    def reject_substitution(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        order.reject_substitution(command.doctor_id, command.reason)
        repo.save_transition(order, expected)
        logger.warning(
            "Substitution rejected, manual intervention needed",
            order_id=str(order.id),
            doctor_id=command.doctor_id,
        )
        return order
