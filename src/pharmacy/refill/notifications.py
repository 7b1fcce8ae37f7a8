"""Refill event handler: tells patients (and prescribers) what the refill scan did."""

from protean.utils.mixins import handle

from pharmacy.domain import pharmacy
from pharmacy.messaging import get_outbox
from pharmacy.messaging.notification import RecipientRole
from pharmacy.refill.events import RefillOrderCreated, RefillPrescriptionExpired
from pharmacy.refill.refill import RefillSubscription

AUTO_REFILL_CREATED = "AUTO_REFILL_CREATED"
PRESCRIPTION_EXPIRED_FOR_REFILL = "PRESCRIPTION_EXPIRED_FOR_REFILL"


@pharmacy.event_handler(part_of=RefillSubscription)
class RefillNotificationsHandler:
    @handle(RefillOrderCreated)
    def on_refill_order_created(self, event: RefillOrderCreated) -> None:
        get_outbox().publish(
            event.patient_id,
            RecipientRole.PATIENT,
            AUTO_REFILL_CREATED,
            "Refill order placed",
            f"Your refill #{event.refill_number} has been ordered. Next refill: {event.next_due_date:%Y-%m-%d}.",
            {"subscription_id": str(event.subscription_id), "order_id": str(event.order_id)},
        )

    @handle(RefillPrescriptionExpired)
    def on_prescription_expired(self, event: RefillPrescriptionExpired) -> None:
        data = {"subscription_id": str(event.subscription_id), "prescription_id": str(event.prescription_id)}
        get_outbox().publish(
            event.patient_id,
            RecipientRole.PATIENT,
            PRESCRIPTION_EXPIRED_FOR_REFILL,
            "Prescription expired",
            "Your prescription has expired, so no refill was placed. Please book a follow-up consultation.",
            data,
        )
        if event.doctor_id:
            get_outbox().publish(
                event.doctor_id,
                RecipientRole.DOCTOR,
                PRESCRIPTION_EXPIRED_FOR_REFILL,
                "Patient prescription expired",
                "A refill could not be placed because the prescription has expired.",
                data,
            )
