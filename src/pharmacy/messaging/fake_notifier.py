"""Fake notifier: records delivered messages in memory for test assertions."""

from uuid import uuid4

from pharmacy.messaging.port import NotifierPort


class FakeNotifier(NotifierPort):
    """Notifier that always succeeds unless configured otherwise."""

    def __init__(self):
        self.sent_messages: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        """Configure the fake notifier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

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
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"msg-{uuid4().hex[:12]}"
        self.sent_messages.append(
            {
                "message_id": message_id,
                "recipient_id": recipient_id,
                "recipient_role": recipient_role,
                "channel": channel,
                "event_type": event_type,
                "title": title,
                "body": body,
                "data": data,
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def messages_for(self, recipient_id: str) -> list[dict]:
        return [m for m in self.sent_messages if m["recipient_id"] == recipient_id]

    def reset(self):
        """Clear sent messages (useful between tests)."""
        self.sent_messages.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
