"""SLA breach scan: command and handler.

Designed to be triggered periodically by the scheduler. Walks every open
order, records each phase that has run past its limit, and raises one
SlaBreachDetected event (and through it one operator alert) per new breach.
Breaches already on record are never recorded twice, so scans can overlap or
repeat safely.
"""

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder
from pharmacy.order.sla_policy import detect_breaches
from pharmacy.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="PharmacyOrder")
class ScanSlaBreaches:
    """Record SLA breaches on all open orders."""

    as_of = DateTime()  # Optional: defaults to now


@pharmacy.command_handler(part_of=PharmacyOrder)
class ScanSlaBreachesHandler:
    @handle(ScanSlaBreaches)
    def scan_sla_breaches(self, command):
        as_of = command.as_of or utcnow()
        repo = current_domain.repository_for(PharmacyOrder)
        orders = repo.find_open()
        logger.info("Scanning orders for SLA breaches", order_count=len(orders), as_of=as_of.isoformat())

        new_breaches = 0
        for order in orders:
            try:
                recorded = [
                    candidate
                    for candidate in detect_breaches(order, as_of)
                    if order.record_sla_breach(
                        candidate.breach_type,
                        elapsed_hours=candidate.elapsed_hours,
                        limit_hours=candidate.limit_hours,
                        detected_at=as_of,
                    )
                ]
                if recorded:
                    repo.add(order)
                    new_breaches += len(recorded)
                    logger.warning(
                        "SLA breached",
                        order_id=str(order.id),
                        pharmacy_id=order.pharmacy_id,
                        breach_types=[c.breach_type.value for c in recorded],
                    )
            except (ValidationError, InvalidOperationError) as exc:
                logger.warning("Failed to record SLA breach", order_id=str(order.id), error=str(exc))
            except Exception as exc:
                logger.error("Unexpected error while checking SLA", order_id=str(order.id), error=str(exc))

        logger.info("SLA scan complete", new_breaches=new_breaches)
        return new_breaches
