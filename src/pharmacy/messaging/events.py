"""Domain events for the Notification aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from pharmacy.domain import pharmacy


@pharmacy.event(part_of="Notification")
class NotificationQueued:
    """A notification was stored and awaits delivery."""

    __version__ = "v1"

    notification_id = Identifier(required=True)
    recipient_id = Identifier(required=True)
    recipient_role = String(required=True)
    channel = String(required=True)
    event_type = String(required=True)
    queued_at = DateTime(required=True)


@pharmacy.event(part_of="Notification")
class NotificationSent:
    """The notifier accepted the notification."""

    __version__ = "v1"

    notification_id = Identifier(required=True)
    recipient_id = Identifier(required=True)
    channel = String(required=True)
    sent_at = DateTime(required=True)


@pharmacy.event(part_of="Notification")
class NotificationFailed:
    """A delivery attempt failed."""

    __version__ = "v1"

    notification_id = Identifier(required=True)
    recipient_id = Identifier(required=True)
    channel = String(required=True)
    reason = String(required=True)
    attempts = Integer(required=True)
    max_attempts = Integer(required=True)
    failed_at = DateTime(required=True)


@pharmacy.event(part_of="Notification")
class NotificationRetried:
    """A failed notification was put back in line for delivery."""

    __version__ = "v1"

    notification_id = Identifier(required=True)
    recipient_id = Identifier(required=True)
    channel = String(required=True)
    attempts = Integer(required=True)
    retried_at = DateTime(required=True)
