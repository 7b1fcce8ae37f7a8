"""Operator alert sink: routes alerts for human attention into the Notification store."""

import structlog

from pharmacy.messaging.notification import Channel, RecipientRole
from pharmacy.messaging.outbox import Outbox

logger = structlog.get_logger(__name__)


class AlertType:
    NO_ELIGIBLE_PHARMACY = "NO_ELIGIBLE_PHARMACY"
    REASSIGNMENT_FAILED = "REASSIGNMENT_FAILED"
    STOCK_ISSUE = "PHARMACY_STOCK_ISSUE"
    SUBSTITUTION_REJECTED = "SUBSTITUTION_REJECTED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    DAMAGE_REPORT_SUBMITTED = "DAMAGE_REPORT_SUBMITTED"
    COLD_CHAIN_BREACH = "COLD_CHAIN_BREACH"
    SLA_BREACH = "SLA_BREACH"
    PHARMACY_SUSPENDED = "PHARMACY_SUSPENDED"
    PHARMACY_LICENSE_EXPIRED = "PHARMACY_LICENSE_EXPIRED"
    PHARMACY_LICENSE_EXPIRING = "PHARMACY_LICENSE_EXPIRING"
    PHARMACIST_REGISTRATION_EXPIRED = "PHARMACIST_REGISTRATION_EXPIRED"
    PHARMACIST_REGISTRATION_EXPIRING = "PHARMACIST_REGISTRATION_EXPIRING"


class OperatorAlertSink:
    def __init__(self, outbox: Outbox, recipient_id: str = "operations"):
        self.outbox = outbox
        self.recipient_id = recipient_id

    def alert(self, event_type: str, title: str, body: str, data: dict | None = None) -> None:
        logger.warning("Operator alert", alert_type=event_type, title=title, **(data or {}))
        self.outbox.publish(
            recipient_id=self.recipient_id,
            recipient_role=RecipientRole.OPERATOR,
            event_type=event_type,
            title=title,
            body=body,
            data=data,
            channel=Channel.IN_APP,
        )
