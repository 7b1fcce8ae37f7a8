"""Returns and post-delivery exceptions: commands and handler.

Approved damage and any cold-chain breach both end with a free replacement
order for the same prescription. The replacement goes through normal
assignment, so it can land at any eligible pharmacy.
"""

import json

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from pharmacy.assignment.engine import AssignmentEngine
from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="PharmacyOrder")
class ReportDamagedOrder:
    order_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    photo_urls = Text(required=True)  # JSON list of photo references
    description = String(required=True, max_length=2000)


@pharmacy.command(part_of="PharmacyOrder")
class ApproveDamageReport:
    order_id = Identifier(required=True)
    operator_id = Identifier(required=True)


@pharmacy.command(part_of="PharmacyOrder")
class ProcessReturn:
    order_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)
    package_opened = Boolean(default=False)
    as_of = DateTime()  # Optional: defaults to now


@pharmacy.command(part_of="PharmacyOrder")
class HandleColdChainBreach:
    order_id = Identifier(required=True)


def _replace(order: PharmacyOrder):
    result = AssignmentEngine().assign(
        str(order.prescription_id),
        replacement_for_order_id=str(order.id),
    )
    logger.info(
        "Replacement order requested",
        original_order_id=str(order.id),
        assigned=result.assigned,
        replacement_order_id=result.pharmacy_order_id,
    )
    return result


@pharmacy.command_handler(part_of=PharmacyOrder)
class ReturnsHandler:
    @handle(ReportDamagedOrder)
    def report_damaged_order(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        order.report_damage(
            patient_id=command.patient_id,
            photo_urls=json.loads(command.photo_urls),
            description=command.description,
        )
        repo.save_transition(order, expected)
        return order

    @handle(ApproveDamageReport)
    def approve_damage_report(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        order.approve_damage(command.operator_id)
        repo.save_transition(order, expected)
        return _replace(order)

    @handle(ProcessReturn)
    def process_return(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        order.accept_return(
            patient_id=command.patient_id,
            reason=command.reason,
            package_opened=bool(command.package_opened),
            as_of=command.as_of,
        )
        repo.save_transition(order, expected)
        return order

    @handle(HandleColdChainBreach)
    def handle_cold_chain_breach(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        order.record_cold_chain_breach()
        repo.save_transition(order, expected)
        return _replace(order)
