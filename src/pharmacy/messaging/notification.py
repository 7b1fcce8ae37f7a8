"""Notification aggregate (CQRS): one stored message awaiting or past delivery.

Notifications and operator alerts are side effects of committed state
changes. They are written in the same unit of work as the change that caused
them and delivered later by the delivery job, so a slow or failing channel
can never roll back or block an order transition.

State Machine:
    PENDING -> SENT
    PENDING -> FAILED -> (retry) -> PENDING
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Dict, Identifier, Integer, String, Text

from pharmacy.domain import pharmacy
from pharmacy.messaging.events import (
    NotificationFailed,
    NotificationQueued,
    NotificationRetried,
    NotificationSent,
)
from pharmacy.utils.clock import utcnow

MAX_DELIVERY_ATTEMPTS = 3


class Channel(Enum):
    PUSH = "Push"
    SMS = "SMS"
    EMAIL = "Email"
    IN_APP = "In_App"


class RecipientRole(Enum):
    PATIENT = "Patient"
    DOCTOR = "Doctor"
    PHARMACY_STAFF = "Pharmacy_Staff"
    OPERATOR = "Operator"


class NotificationStatus(Enum):
    PENDING = "Pending"
    SENT = "Sent"
    FAILED = "Failed"


_VALID_TRANSITIONS = {
    NotificationStatus.PENDING: {NotificationStatus.SENT, NotificationStatus.FAILED},
    NotificationStatus.FAILED: {NotificationStatus.PENDING},  # Via retry
    NotificationStatus.SENT: set(),  # Terminal
}


@pharmacy.aggregate
class Notification:
    """A message for a patient, doctor, pharmacy staff member or operator."""

    recipient_id = Identifier(required=True)
    recipient_role = String(choices=RecipientRole, required=True)
    channel = String(choices=Channel, default=Channel.PUSH.value)

    event_type = String(max_length=100, required=True)
    title = String(max_length=255, required=True)
    body = Text(required=True)
    data = Dict(default=dict)

    status = String(choices=NotificationStatus, default=NotificationStatus.PENDING.value)
    attempts = Integer(default=0, min_value=0)
    max_attempts = Integer(default=MAX_DELIVERY_ATTEMPTS, min_value=1)
    failure_reason = String(max_length=500)
    sent_at = DateTime()

    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, recipient_id, recipient_role, event_type, title, body, data=None, channel=Channel.PUSH.value):
        """Store a new notification in PENDING status. ``None`` values are left out of ``data``."""
        now = utcnow()
        notification = cls(
            recipient_id=str(recipient_id),
            recipient_role=recipient_role,
            channel=channel,
            event_type=event_type,
            title=title,
            body=body,
            data={k: v for k, v in (data or {}).items() if v is not None},
            status=NotificationStatus.PENDING.value,
            attempts=0,
            max_attempts=MAX_DELIVERY_ATTEMPTS,
            created_at=now,
            updated_at=now,
        )
        notification.raise_(
            NotificationQueued(
                notification_id=str(notification.id),
                recipient_id=str(recipient_id),
                recipient_role=recipient_role,
                channel=channel,
                event_type=event_type,
                queued_at=now,
            )
        )
        return notification

    @property
    def can_retry(self) -> bool:
        return self.status == NotificationStatus.FAILED.value and (self.attempts or 0) < self.max_attempts

    def _assert_can_transition(self, target_status):
        current = NotificationStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def mark_sent(self, sent_at=None):
        self._assert_can_transition(NotificationStatus.SENT)

        now = sent_at or utcnow()
        self.status = NotificationStatus.SENT.value
        self.attempts = (self.attempts or 0) + 1
        self.failure_reason = None
        self.sent_at = now
        self.updated_at = now

        self.raise_(
            NotificationSent(
                notification_id=str(self.id),
                recipient_id=str(self.recipient_id),
                channel=self.channel,
                sent_at=now,
            )
        )

    def mark_failed(self, reason):
        """Record a failed delivery attempt."""
        self._assert_can_transition(NotificationStatus.FAILED)

        now = utcnow()
        self.status = NotificationStatus.FAILED.value
        self.attempts = (self.attempts or 0) + 1
        self.failure_reason = (reason or "Unknown delivery error")[:500]
        self.updated_at = now

        self.raise_(
            NotificationFailed(
                notification_id=str(self.id),
                recipient_id=str(self.recipient_id),
                channel=self.channel,
                reason=self.failure_reason,
                attempts=self.attempts,
                max_attempts=self.max_attempts,
                failed_at=now,
            )
        )

    def retry(self):
        """Put a failed notification back in line for delivery."""
        if NotificationStatus(self.status) != NotificationStatus.FAILED:
            raise ValidationError({"status": ["Only failed notifications can be retried"]})
        if (self.attempts or 0) >= self.max_attempts:
            raise ValidationError({"attempts": ["Maximum delivery attempts exceeded"]})

        now = utcnow()
        self.status = NotificationStatus.PENDING.value
        self.failure_reason = None
        self.updated_at = now

        self.raise_(
            NotificationRetried(
                notification_id=str(self.id),
                recipient_id=str(self.recipient_id),
                channel=self.channel,
                attempts=self.attempts,
                retried_at=now,
            )
        )
