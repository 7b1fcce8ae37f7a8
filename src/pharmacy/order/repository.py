"""Repository for the PharmacyOrder aggregate.

Every finder lifts the query's default page size with ``limit(None)``;
callers such as the SLA scan and the monthly report need every row.
"""

from datetime import datetime

from pharmacy.domain import pharmacy
from pharmacy.errors import TransitionConflictError
from pharmacy.order.order import PharmacyOrder
from pharmacy.order.states import TERMINAL_STATUSES, OrderStatus
from pharmacy.utils.clock import as_utc


@pharmacy.repository(part_of=PharmacyOrder)
class PharmacyOrderRepository:
    def _all(self, **filters) -> list[PharmacyOrder]:
        return self._dao.query.filter(**filters).limit(None).all().items

    def find_by_status(self, status: OrderStatus) -> list[PharmacyOrder]:
        return self._all(status=status.value)

    def find_open(self) -> list[PharmacyOrder]:
        """Every order not yet in a terminal status."""
        open_statuses = [s.value for s in OrderStatus if s not in TERMINAL_STATUSES]
        return self._all(status__in=open_statuses)

    def find_by_pharmacy(self, pharmacy_id: str, status: OrderStatus | None = None) -> list[PharmacyOrder]:
        filters = {"pharmacy_id": pharmacy_id}
        if status is not None:
            filters["status"] = status.value
        return self._all(**filters)

    def find_by_prescription(self, prescription_id: str) -> list[PharmacyOrder]:
        return self._all(prescription_id=prescription_id)

    def find_by_patient(self, patient_id: str) -> list[PharmacyOrder]:
        return self._all(patient_id=patient_id)

    def find_handled_by(self, pharmacy_id: str, start: datetime, end: datetime) -> list[PharmacyOrder]:
        """Orders created in [start, end] that were assigned to, or turned down by, the pharmacy."""
        start, end = as_utc(start), as_utc(end)
        orders = []
        for order in self._all():
            created = as_utc(order.created_at)
            if created is None or not (start <= created <= end):
                continue
            if str(order.pharmacy_id) == str(pharmacy_id) or str(pharmacy_id) in order.rejected_by_pharmacies:
                orders.append(order)
        return orders

    def save_transition(self, order: PharmacyOrder, expected_status: OrderStatus) -> PharmacyOrder:
        """Persist ``order`` only if the stored copy is still in ``expected_status``.

        Two actors that loaded the same order race here; the loser gets a
        TransitionConflictError instead of overwriting the winner.
        """
        stored = self._dao.query.filter(id=str(order.id)).all().first
        if stored is not None and stored.status != expected_status.value:
            raise TransitionConflictError(str(order.id), expected_status.value, stored.status)
        self.add(order)
        return order
