"""Notification delivery: commands and handlers.

DeliverPendingNotifications is designed to be triggered periodically by the
scheduler. It first puts failed notifications that still have attempts left
back in line, then hands every pending notification to the configured
notifier. A notification that fails its last attempt stays FAILED and is
reported once with an error log.

RetryNotification lets an operator requeue one failed notification by hand.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.messaging.notification import Notification
from pharmacy.utils.clock import as_utc

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="Notification")
class DeliverPendingNotifications:
    """Deliver every pending notification and retry recent failures."""


@pharmacy.command(part_of="Notification")
class RetryNotification:
    notification_id = Identifier(required=True)


def _send(notifier, notification: Notification) -> str | None:
    """Hand one notification to ``notifier``; returns the error, or None once it is accepted."""
    result = notifier.send(
        recipient_id=str(notification.recipient_id),
        recipient_role=notification.recipient_role,
        channel=notification.channel,
        event_type=notification.event_type,
        title=notification.title,
        body=notification.body,
        data=dict(notification.data or {}),
    )
    if result.get("status") == "sent":
        return None
    return result.get("error") or "Unknown delivery error"


@pharmacy.command_handler(part_of=Notification)
class NotificationDeliveryHandler:
    @handle(DeliverPendingNotifications)
    def deliver_pending(self, command):
        from pharmacy.messaging import get_notifier

        notifier = get_notifier()
        repo = current_domain.repository_for(Notification)

        batch = []
        for notification in repo.find_retryable():
            notification.retry()
            batch.append(notification)
        batch.extend(repo.find_pending())
        batch.sort(key=lambda n: as_utc(n.created_at))

        summary = {"sent": 0, "failed": 0, "dropped": 0}
        for notification in batch:
            try:
                error = _send(notifier, notification)
            except Exception as exc:
                error = str(exc) or exc.__class__.__name__

            if error is None:
                notification.mark_sent()
                summary["sent"] += 1
            else:
                notification.mark_failed(error)
                summary["failed"] += 1
                if notification.can_retry:
                    logger.warning(
                        "Notification delivery failed",
                        notification_id=str(notification.id),
                        event_type=notification.event_type,
                        attempts=notification.attempts,
                        error=error,
                    )
                else:
                    summary["dropped"] += 1
                    logger.error(
                        "Giving up on notification",
                        notification_id=str(notification.id),
                        event_type=notification.event_type,
                        recipient_id=str(notification.recipient_id),
                        attempts=notification.attempts,
                        error=error,
                    )
            repo.add(notification)

        if batch:
            logger.info("Notifications delivered", **summary)
        return summary

    @handle(RetryNotification)
    def retry_notification(self, command):
        repo = current_domain.repository_for(Notification)
        notification = repo.get(command.notification_id)
        notification.retry()
        repo.add(notification)
        logger.info("Notification requeued", notification_id=str(notification.id), attempts=notification.attempts)
