"""Pharmacy event handler: operator alert when a pharmacy leaves the pool."""

from protean.utils.mixins import handle

from pharmacy.domain import pharmacy
from pharmacy.messaging import get_operator_sink
from pharmacy.messaging.alerts import AlertType
from pharmacy.pharmacy.events import PharmacySuspended
from pharmacy.pharmacy.pharmacy import Pharmacy


@pharmacy.event_handler(part_of=Pharmacy)
class PharmacyNotificationsHandler:
    @handle(PharmacySuspended)
    def on_pharmacy_suspended(self, event: PharmacySuspended) -> None:
        get_operator_sink().alert(
            AlertType.PHARMACY_SUSPENDED,
            "Pharmacy suspended",
            f"{event.name} was suspended: {event.reason}",
            {"pharmacy_id": str(event.pharmacy_id), "reason": event.reason},
        )
