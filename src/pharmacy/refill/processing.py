"""Due refill scan: command and handler.

Designed to be triggered daily by the scheduler. Looks a few days ahead so
that medication arrives before the patient runs out. Each subscription is
handled on its own: one failure is logged and the scan moves on.
"""

from datetime import timedelta

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Integer
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.order.assignment import AssignPharmacy
from pharmacy.prescription import get_prescription_lookup
from pharmacy.refill.refill import RefillSubscription
from pharmacy.utils.clock import as_utc, utcnow

logger = structlog.get_logger(__name__)

REFILL_LOOKAHEAD_DAYS = 5


@pharmacy.command(part_of="RefillSubscription")
class ProcessDueRefills:
    """Place orders for every subscription due within the look-ahead window."""

    lookahead_days = Integer(default=REFILL_LOOKAHEAD_DAYS, min_value=0)
    as_of = DateTime()  # Optional: defaults to now


@pharmacy.command_handler(part_of=RefillSubscription)
class ProcessDueRefillsHandler:
    @handle(ProcessDueRefills)
    def process_due_refills(self, command):
        as_of = as_utc(command.as_of) or utcnow()
        lookahead = command.lookahead_days if command.lookahead_days is not None else REFILL_LOOKAHEAD_DAYS
        cutoff = as_of + timedelta(days=lookahead)

        repo = current_domain.repository_for(RefillSubscription)
        due = repo.find_due(cutoff)
        logger.info("Processing due refills", due_count=len(due), cutoff=cutoff.isoformat())

        summary = {"created": 0, "expired": 0, "unassigned": 0, "failed": 0}
        lookup = get_prescription_lookup()
        for sub in due:
            try:
                prescription = lookup.lookup(str(sub.prescription_id))
                valid_until = as_utc(prescription.get("valid_until")) if prescription else None
                if prescription is None or (valid_until is not None and valid_until <= as_of):
                    sub.stop_for_expired_prescription(doctor_id=prescription.get("doctor_id") if prescription else None)
                    repo.add(sub)
                    summary["expired"] += 1
                    logger.info("Refill skipped, prescription expired", subscription_id=str(sub.id))
                    continue

                result = current_domain.process(
                    AssignPharmacy(prescription_id=str(sub.prescription_id)),
                    asynchronous=False,
                )
                if not result.assigned:
                    summary["unassigned"] += 1
                    continue

                sub.record_refill(result.pharmacy_order_id, as_of=as_of)
                repo.add(sub)
                summary["created"] += 1
                logger.info(
                    "Refill order created",
                    subscription_id=str(sub.id),
                    order_id=result.pharmacy_order_id,
                    next_due_date=sub.next_due_date.isoformat(),
                )
            except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
                summary["failed"] += 1
                logger.warning("Failed to process refill", subscription_id=str(sub.id), error=str(exc))
            except Exception as exc:
                summary["failed"] += 1
                logger.error("Unexpected error while processing refill", subscription_id=str(sub.id), error=str(exc))

        logger.info("Refill processing complete", **summary)
        return summary
