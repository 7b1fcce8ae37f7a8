"""Notifier port: abstract interface for outbound notification delivery.

The domain never talks to a delivery channel directly: it stores
Notifications through the outbox, and the delivery job hands them to
whichever adapter implements this port.
"""

from abc import ABC, abstractmethod


class NotifierPort(ABC):
    """Abstract interface for notification delivery adapters."""

    @abstractmethod
    def send(
        self,
        recipient_id: str,
        recipient_role: str,
        channel: str,
        event_type: str,
        title: str,
        body: str,
        data: dict | None = None,
    ) -> dict:
        """Deliver one message.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
