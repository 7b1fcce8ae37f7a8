"""RefillSubscription aggregate (CQRS): recurring orders for a long-running prescription."""

from datetime import datetime, timedelta

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from pharmacy.domain import pharmacy
from pharmacy.errors import PermissionDeniedError
from pharmacy.refill.events import (
    RefillOrderCreated,
    RefillPrescriptionExpired,
    RefillSubscriptionCancelled,
    RefillSubscriptionCreated,
)
from pharmacy.utils.clock import as_utc, utcnow

PRESCRIPTION_EXPIRED_REASON = "Prescription expired"


@pharmacy.aggregate
class RefillSubscription:
    patient_id = Identifier(required=True)
    prescription_id = Identifier(required=True)
    interval_days = Integer(required=True, min_value=1)
    next_due_date = DateTime(required=True)
    total_refills_created = Integer(default=0, min_value=0)
    is_active = Boolean(default=True)
    last_order_id = Identifier()
    cancelled_at = DateTime()
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, patient_id: str, prescription_id: str, interval_days: int, now: datetime | None = None):
        now = now or utcnow()
        next_due = now + timedelta(days=interval_days)
        sub = cls(
            patient_id=patient_id,
            prescription_id=prescription_id,
            interval_days=interval_days,
            next_due_date=next_due,
            total_refills_created=0,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        sub.raise_(
            RefillSubscriptionCreated(
                subscription_id=str(sub.id),
                patient_id=patient_id,
                prescription_id=prescription_id,
                interval_days=interval_days,
                next_due_date=next_due,
                created_at=now,
            )
        )
        return sub

    def _assert_active(self) -> None:
        if not self.is_active:
            raise ValidationError({"is_active": ["Refill subscription is not active"]})

    def record_refill(self, order_id: str, as_of: datetime | None = None) -> None:
        """Remember the order and push the due date one interval forward.

        Counting starts from the scheduled date, or from ``as_of`` when the
        refill is already overdue, so a late refill does not cause a burst of
        catch-up orders.
        """
        self._assert_active()
        now = as_utc(as_of) or utcnow()
        base = max(as_utc(self.next_due_date), now)
        self.next_due_date = base + timedelta(days=self.interval_days)
        self.total_refills_created = (self.total_refills_created or 0) + 1
        self.last_order_id = order_id
        self.updated_at = now
        self.raise_(
            RefillOrderCreated(
                subscription_id=str(self.id),
                patient_id=str(self.patient_id),
                order_id=order_id,
                refill_number=self.total_refills_created,
                next_due_date=self.next_due_date,
                created_at=now,
            )
        )

    def stop_for_expired_prescription(self, doctor_id: str | None = None) -> None:
        self._assert_active()
        now = utcnow()
        self.is_active = False
        self.cancellation_reason = PRESCRIPTION_EXPIRED_REASON
        self.cancelled_at = now
        self.updated_at = now
        self.raise_(
            RefillPrescriptionExpired(
                subscription_id=str(self.id),
                patient_id=str(self.patient_id),
                prescription_id=str(self.prescription_id),
                doctor_id=doctor_id,
                detected_at=now,
            )
        )

    def cancel(self, patient_id: str, reason: str | None = None) -> None:
        if str(self.patient_id) != str(patient_id):
            raise PermissionDeniedError("Only the subscribing patient may cancel refills", actor_id=patient_id)
        self._assert_active()

        now = utcnow()
        reason = reason or "Cancelled by patient"
        self.is_active = False
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.updated_at = now
        self.raise_(
            RefillSubscriptionCancelled(
                subscription_id=str(self.id),
                patient_id=str(self.patient_id),
                reason=reason,
                cancelled_at=now,
            )
        )
