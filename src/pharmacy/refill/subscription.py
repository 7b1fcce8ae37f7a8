"""Refill subscriptions: commands and handler."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.errors import PermissionDeniedError
from pharmacy.prescription import get_prescription_lookup
from pharmacy.refill.refill import RefillSubscription
from pharmacy.utils.clock import as_utc, utcnow

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="RefillSubscription")
class CreateRefillSubscription:
    patient_id = Identifier(required=True)
    prescription_id = Identifier(required=True)
    interval_days = Integer(required=True, min_value=1)


@pharmacy.command(part_of="RefillSubscription")
class CancelRefillSubscription:
    subscription_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    reason = String(max_length=500)


@pharmacy.command_handler(part_of=RefillSubscription)
class RefillSubscriptionHandler:
    @handle(CreateRefillSubscription)
    def create_refill_subscription(self, command):
        prescription = get_prescription_lookup().lookup(command.prescription_id)
        if prescription is None:
            raise ObjectNotFoundError({"_entity": [f"Prescription {command.prescription_id} does not exist"]})
        if str(prescription["patient_id"]) != str(command.patient_id):
            raise PermissionDeniedError("Prescription belongs to a different patient", actor_id=command.patient_id)

        now = utcnow()
        valid_until = as_utc(prescription.get("valid_until"))
        if valid_until is not None and valid_until <= now:
            raise ValidationError({"prescription_id": ["Prescription has expired"]})

        sub = RefillSubscription.create(
            patient_id=command.patient_id,
            prescription_id=command.prescription_id,
            interval_days=command.interval_days,
            now=now,
        )
        current_domain.repository_for(RefillSubscription).add(sub)
        logger.info(
            "Refill subscription created",
            subscription_id=str(sub.id),
            interval_days=command.interval_days,
            next_due_date=sub.next_due_date.isoformat(),
        )
        return str(sub.id)

    @handle(CancelRefillSubscription)
    def cancel_refill_subscription(self, command):
        repo = current_domain.repository_for(RefillSubscription)
        sub = repo.get(command.subscription_id)
        sub.cancel(command.patient_id, reason=command.reason)
        repo.add(sub)
        return sub
