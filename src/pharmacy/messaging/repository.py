"""Repository for the Notification aggregate."""

from pharmacy.domain import pharmacy
from pharmacy.messaging.notification import Notification, NotificationStatus


@pharmacy.repository(part_of=Notification)
class NotificationRepository:
    def _all(self, **filters) -> list[Notification]:
        return self._dao.query.filter(**filters).order_by("created_at").limit(None).all().items

    def find_by_status(self, status: NotificationStatus) -> list[Notification]:
        """Notifications in ``status``, oldest first."""
        return self._all(status=status.value)

    def find_pending(self) -> list[Notification]:
        return self.find_by_status(NotificationStatus.PENDING)

    def find_retryable(self) -> list[Notification]:
        """Failed notifications that still have delivery attempts left."""
        return [n for n in self.find_by_status(NotificationStatus.FAILED) if n.can_retry]

    def find_by_event_type(self, event_type: str, status: NotificationStatus | None = None) -> list[Notification]:
        filters = {"event_type": event_type}
        if status is not None:
            filters["status"] = status.value
        return self._all(**filters)
