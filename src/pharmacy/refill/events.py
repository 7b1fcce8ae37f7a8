"""RefillSubscription domain events."""

from protean.fields import DateTime, Identifier, Integer, String

from pharmacy.domain import pharmacy


@pharmacy.event(part_of="RefillSubscription")
class RefillSubscriptionCreated:
    """A patient subscribed to recurring refills of a prescription."""

    __version__ = "v1"

    subscription_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    prescription_id = Identifier(required=True)
    interval_days = Integer(required=True)
    next_due_date = DateTime(required=True)
    created_at = DateTime(required=True)


@pharmacy.event(part_of="RefillSubscription")
class RefillOrderCreated:
    """A refill order was placed and the next due date moved forward."""

    __version__ = "v1"

    subscription_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    order_id = Identifier(required=True)
    refill_number = Integer(required=True)
    next_due_date = DateTime(required=True)
    created_at = DateTime(required=True)


@pharmacy.event(part_of="RefillSubscription")
class RefillSubscriptionCancelled:
    """The patient stopped the subscription."""

    __version__ = "v1"

    subscription_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@pharmacy.event(part_of="RefillSubscription")
class RefillPrescriptionExpired:
    """A due refill was skipped because the prescription is no longer valid."""

    __version__ = "v1"

    subscription_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    prescription_id = Identifier(required=True)
    doctor_id = Identifier()
    detected_at = DateTime(required=True)
