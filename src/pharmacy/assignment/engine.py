"""Assignment engine: places an order with the best eligible pharmacy.

The engine works inside the caller's unit of work: it loads and mutates
aggregates and hands them to their repositories, and the surrounding command
handler commits. One engine instance is used per command so that a pharmacy
touched twice in the same command is the same object both times.

Capacity is enforced by ``Pharmacy.claim_slot`` on the loaded copy and by the
aggregate version check on save. When two commands claim a slot at the same
pharmacy from the same starting version, the later save fails with
ExpectedVersionError and its unit of work is rolled back, so a stale copy can
never overwrite a claim that has already been saved.
"""

from datetime import datetime
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from pydantic import BaseModel

from pharmacy.assignment.eligibility import is_eligible, requires_cold_chain
from pharmacy.assignment.ranking import rank
from pharmacy.messaging import get_operator_sink
from pharmacy.messaging.alerts import AlertType
from pharmacy.order.order import PharmacyOrder
from pharmacy.order.states import OrderStatus
from pharmacy.pharmacy.pharmacy import Pharmacy
from pharmacy.prescription import get_prescription_lookup
from pharmacy.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class AssignmentReason(Enum):
    ASSIGNED = "assigned"
    REASSIGNED = "reassigned"
    NO_ELIGIBLE_PHARMACY = "no_eligible_pharmacy"


class AssignmentResult(BaseModel):
    assigned: bool
    reason: str
    pharmacy_id: str | None = None
    pharmacy_order_id: str | None = None


class AssignmentEngine:
    def __init__(self, lookup=None, operator_sink=None):
        self.lookup = lookup or get_prescription_lookup()
        self.operator_sink = operator_sink or get_operator_sink()
        self._pharmacies: dict[str, Pharmacy] = {}

    # -------------------------------------------------------------------
    # Pharmacy loading
    # -------------------------------------------------------------------
    def track(self, pharmacy: Pharmacy) -> Pharmacy:
        """Make ``pharmacy`` the instance this engine uses for its id."""
        self._pharmacies[str(pharmacy.id)] = pharmacy
        return pharmacy

    def _pharmacy(self, pharmacy_id: str) -> Pharmacy:
        if pharmacy_id not in self._pharmacies:
            self.track(current_domain.repository_for(Pharmacy).get(pharmacy_id))
        return self._pharmacies[pharmacy_id]

    def eligible_candidates(
        self,
        city: str | None,
        needs_cold_chain: bool,
        exclude_pharmacy_ids=(),
        now: datetime | None = None,
    ) -> list[Pharmacy]:
        now = now or utcnow()
        excluded = {str(pid) for pid in exclude_pharmacy_ids if pid}
        candidates = []
        for ph in current_domain.repository_for(Pharmacy).find_active_in_city(city):
            ph = self._pharmacies.get(str(ph.id), ph)
            if str(ph.id) in excluded:
                continue
            if is_eligible(ph, needs_cold_chain, now):
                candidates.append(ph)
        return candidates

    def _claim_best(self, ranked: list[Pharmacy]) -> Pharmacy | None:
        """Claim a slot at the first ranked pharmacy that still has one."""
        for ph in ranked:
            try:
                ph.claim_slot()
            except ValidationError:
                logger.info("Pharmacy filled up during assignment, trying next", pharmacy_id=str(ph.id))
                continue
            self.track(ph)
            return ph
        return None

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def assign(
        self,
        prescription_id: str,
        exclude_pharmacy_ids=(),
        replacement_for_order_id: str | None = None,
    ) -> AssignmentResult:
        """Open a new order for the prescription and place it with the best pharmacy.

        When nobody is eligible, nothing is created: operators are alerted and
        the result says so.
        """
        prescription = self.lookup.lookup(prescription_id)
        if prescription is None:
            raise ObjectNotFoundError({"_entity": [f"Prescription {prescription_id} does not exist"]})

        medications = prescription.get("medications") or []
        needs_cold_chain = requires_cold_chain(medications)
        city = prescription.get("delivery_city")
        pincode = prescription.get("delivery_pincode")

        ranked = rank(self.eligible_candidates(city, needs_cold_chain, exclude_pharmacy_ids), pincode)
        chosen = self._claim_best(ranked)
        if chosen is None:
            logger.warning(
                "No eligible pharmacy for prescription",
                prescription_id=prescription_id,
                city=city,
                requires_cold_chain=needs_cold_chain,
            )
            self.operator_sink.alert(
                AlertType.NO_ELIGIBLE_PHARMACY,
                "No eligible pharmacy",
                f"No pharmacy in {city} can take prescription {prescription_id}.",
                {
                    "prescription_id": prescription_id,
                    "city": city,
                    "requires_cold_chain": needs_cold_chain,
                    "replacement_for_order_id": replacement_for_order_id,
                },
            )
            return AssignmentResult(assigned=False, reason=AssignmentReason.NO_ELIGIBLE_PHARMACY.value)

        order = PharmacyOrder.create(
            prescription_id=prescription_id,
            patient_id=prescription["patient_id"],
            doctor_id=prescription.get("doctor_id"),
            consultation_id=prescription.get("consultation_id"),
            requires_cold_chain=needs_cold_chain,
            medications=medications,
            delivery_address=prescription.get("delivery_address"),
            delivery_city=city,
            delivery_pincode=pincode,
            replacement_for_order_id=replacement_for_order_id,
        )
        order.assign_to(str(chosen.id))

        current_domain.repository_for(PharmacyOrder).add(order)
        current_domain.repository_for(Pharmacy).add(chosen)

        logger.info(
            "Order assigned",
            order_id=str(order.id),
            order_number=order.order_number,
            pharmacy_id=str(chosen.id),
            queue_size=chosen.current_queue_size,
            requires_cold_chain=needs_cold_chain,
        )
        return AssignmentResult(
            assigned=True,
            reason=AssignmentReason.ASSIGNED.value,
            pharmacy_id=str(chosen.id),
            pharmacy_order_id=str(order.id),
        )

    def reassign(self, order: PharmacyOrder, reason: str) -> AssignmentResult:
        """Move ``order`` to a different pharmacy.

        The previous pharmacy gets its slot back and is never chosen again for
        this order. Pharmacies are persisted here; the caller persists the order.
        """
        if order.current_status == OrderStatus.ASSIGNED:
            order.reject(reason)
        previous = order.return_to_pool(reason)

        if previous:
            prev_ph = self._pharmacy(previous)
            prev_ph.release_slot()
            current_domain.repository_for(Pharmacy).add(prev_ph)

        excluded = set(order.rejected_by_pharmacies)
        if previous:
            excluded.add(previous)

        ranked = rank(
            self.eligible_candidates(order.delivery_city, bool(order.requires_cold_chain), excluded),
            order.delivery_pincode,
        )
        chosen = self._claim_best(ranked)
        if chosen is None:
            logger.warning(
                "Reassignment failed, order waiting in pool",
                order_id=str(order.id),
                previous_pharmacy_id=previous,
                reason=reason,
            )
            order.record_reassignment_failure(reason)
            return AssignmentResult(assigned=False, reason=AssignmentReason.NO_ELIGIBLE_PHARMACY.value)

        order.assign_to(str(chosen.id))
        current_domain.repository_for(Pharmacy).add(chosen)

        logger.info(
            "Order reassigned",
            order_id=str(order.id),
            previous_pharmacy_id=previous,
            pharmacy_id=str(chosen.id),
            reason=reason,
        )
        return AssignmentResult(
            assigned=True,
            reason=AssignmentReason.REASSIGNED.value,
            pharmacy_id=str(chosen.id),
            pharmacy_order_id=str(order.id),
        )
