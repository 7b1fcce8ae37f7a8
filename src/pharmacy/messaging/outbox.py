"""Outbox: the publishing side of the Notification store.

Domain handlers call ``publish()`` to store a Notification in the current
unit of work; the delivery job sends it later. Reads go through the
Notification repository, so queued messages survive restarts and are shared
by every process that uses the same database.
"""

import structlog
from protean.utils.globals import current_domain

from pharmacy.messaging.delivery import DeliverPendingNotifications
from pharmacy.messaging.notification import Channel, Notification, RecipientRole
from pharmacy.utils.clock import as_utc

logger = structlog.get_logger(__name__)


def _value(member):
    return member.value if hasattr(member, "value") else member


class Outbox:
    def publish(
        self,
        recipient_id: str,
        recipient_role: RecipientRole | str,
        event_type: str,
        title: str,
        body: str,
        data: dict | None = None,
        channel: Channel | str = Channel.PUSH,
    ) -> Notification | None:
        """Store a notification. Never raises; one that cannot be built is logged and dropped."""
        try:
            notification = Notification.create(
                recipient_id=recipient_id,
                recipient_role=_value(recipient_role),
                event_type=event_type,
                title=title,
                body=body,
                data=data,
                channel=_value(channel),
            )
            current_domain.repository_for(Notification).add(notification)
        except Exception as exc:
            logger.error("Dropping malformed notification", event_type=event_type, error=str(exc))
            return None

        logger.debug(
            "Notification queued",
            event_type=event_type,
            recipient_id=str(recipient_id),
            recipient_role=notification.recipient_role,
        )
        return notification

    @property
    def pending(self) -> list[Notification]:
        """Notifications still awaiting delivery, oldest first."""
        repo = current_domain.repository_for(Notification)
        waiting = repo.find_pending() + repo.find_retryable()
        return sorted(waiting, key=lambda n: as_utc(n.created_at))

    def pending_of_type(self, event_type: str) -> list[Notification]:
        return [n for n in self.pending if n.event_type == event_type]

    def flush(self) -> dict:
        """Deliver everything waiting through the configured notifier."""
        return current_domain.process(DeliverPendingNotifications(), asynchronous=False)
