"""PharmacyOrder aggregate (CQRS): one prescription being filled by one pharmacy.

State Machine (see pharmacy.order.states for the full table):
    PENDING_ASSIGNMENT → ASSIGNED → PHARMACY_ACCEPTED → PREPARING → READY_FOR_PICKUP
        → OUT_FOR_DELIVERY → DELIVERED
    ASSIGNED → PHARMACY_REJECTED → PENDING_ASSIGNMENT                (reassignment)
    {PHARMACY_ACCEPTED, PREPARING} → STOCK_ISSUE ⇄ AWAITING_SUBSTITUTION_APPROVAL
    OUT_FOR_DELIVERY → DELIVERY_ATTEMPTED → OUT_FOR_DELIVERY | DELIVERY_FAILED
    DELIVERED → DAMAGE_REPORTED → DAMAGE_APPROVED | RETURN_ACCEPTED | COLD_CHAIN_BREACH

``transition_to`` is the only writer of ``status``. It refuses any move that
is not in the table and stamps the timestamp belonging to the new status.
"""

import secrets
from datetime import datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Dict,
    Float,
    HasMany,
    Identifier,
    Integer,
    List,
    String,
    ValueObject,
)

from pharmacy.domain import pharmacy
from pharmacy.errors import IllegalTransitionError, PermissionDeniedError
from pharmacy.order.events import (
    ColdChainBreachRecorded,
    DamageReportApproved,
    DamageReported,
    DeliveryAddressUpdated,
    DeliveryAttemptFailed,
    DeliveryStatusUpdated,
    DiscreetPackagingConfirmed,
    OrderAcceptedByPharmacy,
    OrderDelivered,
    OrderDispatched,
    OrderPreparationStarted,
    OrderReadyForPickup,
    OrderRejectedByPharmacy,
    OrderReturnedToPool,
    PharmacyOrderAssigned,
    PharmacyOrderCancelled,
    PharmacyOrderCreated,
    ReassignmentFailed,
    ReturnAccepted,
    SlaBreachDetected,
    StockIssueReported,
    SubstitutionApproved,
    SubstitutionProposed,
    SubstitutionRejected,
)
from pharmacy.order.sla_policy import SlaBreachType
from pharmacy.order.states import (
    PRE_DISPATCH_STATUSES,
    SLOT_HOLDING_STATUSES,
    STATUS_TIMESTAMP_FIELDS,
    OrderStatus,
    can_transition,
    is_terminal,
)
from pharmacy.utils.clock import as_utc, hours_between, utcnow

RETURN_WINDOW_HOURS = 48
MAX_STANDARD_DELIVERY_ATTEMPTS = 2


class TrackingStatus(Enum):
    PICKED_UP = "Picked_Up"
    IN_TRANSIT = "In_Transit"
    ARRIVED = "Arrived"
    DELIVERED = "Delivered"
    FAILED = "Failed"


# Courier-reported progress; the remaining statuses are set by the workflow itself
COURIER_REPORTABLE_STATUSES = frozenset({TrackingStatus.IN_TRANSIT, TrackingStatus.ARRIVED})


class SubstitutionDecision(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


def generate_order_number() -> str:
    return f"PO-{utcnow():%Y%m%d}-{uuid4().hex[:8].upper()}"


def generate_delivery_otp() -> str:
    """Uniform four-digit code in 1000..9999."""
    return str(1000 + secrets.randbelow(9000))


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@pharmacy.value_object(part_of="PharmacyOrder")
class StockIssue:
    """Items the pharmacy could not fill."""

    missing_items = List(content_type=String)
    reported_by = Identifier()
    reported_at = DateTime()


@pharmacy.value_object(part_of="PharmacyOrder")
class SubstitutionProposal:
    """A substitute medication awaiting (or past) the prescriber's decision."""

    original_medication = String(max_length=255)
    substitute_medication = String(max_length=255)
    reason = String(max_length=1000)
    proposed_by = Identifier()
    proposed_at = DateTime()
    decision = String(
        max_length=50,
        choices=SubstitutionDecision,
        default=SubstitutionDecision.PENDING.value,
    )
    decided_by = Identifier()
    decided_at = DateTime()
    decision_reason = String(max_length=1000)


@pharmacy.value_object(part_of="PharmacyOrder")
class DamageReport:
    """Evidence attached to a damage claim."""

    photo_urls = List(content_type=String)
    description = String(max_length=2000)
    reported_at = DateTime()
    approved_by = Identifier()
    approved_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@pharmacy.entity(part_of="PharmacyOrder")
class DeliveryTrackingEntry:
    """One courier attempt to deliver the order."""

    status = String(max_length=50, choices=TrackingStatus, default=TrackingStatus.PICKED_UP.value)
    attempt_number = Integer(required=True, min_value=1)
    is_cold_chain = Boolean(default=False)
    courier_name = String(max_length=200)
    courier_phone = String(max_length=50)
    failure_reason = String(max_length=1000)
    otp_verified = Boolean(default=False)
    actual_delivery_at = DateTime()
    notes = String(max_length=1000)
    status_updated_at = DateTime()
    created_at = DateTime()


@pharmacy.entity(part_of="PharmacyOrder")
class SlaBreach:
    """A phase of the order that ran past its limit. At most one per type."""

    breach_type = String(required=True, max_length=50, choices=SlaBreachType)
    detected_at = DateTime(required=True)
    elapsed_hours = Float(required=True)
    limit_hours = Float(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@pharmacy.aggregate
class PharmacyOrder:
    order_number = String(required=True, max_length=50, unique=True)
    prescription_id = Identifier(required=True)
    consultation_id = Identifier()
    patient_id = Identifier(required=True)
    doctor_id = Identifier()
    pharmacy_id = Identifier()
    previous_pharmacy_id = Identifier()
    rejected_pharmacy_ids = List(content_type=Identifier, default=list)  # every pharmacy that turned the order down
    status = String(
        max_length=50,
        choices=OrderStatus,
        default=OrderStatus.PENDING_ASSIGNMENT.value,
    )
    medications = List(content_type=Dict, default=list)  # {name, generic_name, ...} per item
    requires_cold_chain = Boolean(default=False)
    delivery_address = String(max_length=500)
    delivery_city = String(max_length=100)
    delivery_pincode = String(max_length=20)

    accepted_by_staff_id = Identifier()
    rejected_by_staff_id = Identifier()
    rejection_reason = String(max_length=1000)
    stock_issue = ValueObject(StockIssue)
    substitution = ValueObject(SubstitutionProposal)
    is_discreet_packaging_confirmed = Boolean(default=False)
    discreet_packaging_confirmed_by = Identifier()
    delivery_otp = String(max_length=4)
    delivery_attempts = Integer(default=0, min_value=0)
    tracking_entries = HasMany(DeliveryTrackingEntry)
    sla_breaches = HasMany(SlaBreach)
    damage_report = ValueObject(DamageReport)
    return_reason = String(max_length=1000)
    is_package_opened = Boolean()
    cancellation_reason = String(max_length=1000)
    cancelled_by = Identifier()
    replacement_for_order_id = Identifier()
    is_free_replacement = Boolean(default=False)

    created_at = DateTime()
    pending_assignment_at = DateTime()
    assigned_at = DateTime()
    accepted_at = DateTime()
    rejected_at = DateTime()
    preparing_at = DateTime()
    stock_issue_at = DateTime()
    ready_for_pickup_at = DateTime()
    dispatched_at = DateTime()
    delivery_attempted_at = DateTime()
    delivered_at = DateTime()
    delivery_failed_at = DateTime()
    cancelled_at = DateTime()
    damage_reported_at = DateTime()
    damage_approved_at = DateTime()
    returned_at = DateTime()
    cold_chain_breach_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        prescription_id: str,
        patient_id: str,
        requires_cold_chain: bool,
        delivery_address: str | None = None,
        delivery_city: str | None = None,
        delivery_pincode: str | None = None,
        medications: list[dict] | None = None,
        consultation_id: str | None = None,
        doctor_id: str | None = None,
        replacement_for_order_id: str | None = None,
    ):
        """Open an order awaiting assignment. Cold-chain handling is fixed here for good."""
        now = utcnow()
        order = cls(
            order_number=generate_order_number(),
            prescription_id=prescription_id,
            consultation_id=consultation_id,
            patient_id=patient_id,
            doctor_id=doctor_id,
            status=OrderStatus.PENDING_ASSIGNMENT.value,
            medications=list(medications or []),
            requires_cold_chain=requires_cold_chain,
            delivery_address=delivery_address,
            delivery_city=delivery_city,
            delivery_pincode=delivery_pincode,
            replacement_for_order_id=replacement_for_order_id,
            is_free_replacement=replacement_for_order_id is not None,
            created_at=now,
            pending_assignment_at=now,
            updated_at=now,
        )
        order.raise_(
            PharmacyOrderCreated(
                order_id=str(order.id),
                order_number=order.order_number,
                prescription_id=prescription_id,
                patient_id=patient_id,
                requires_cold_chain=requires_cold_chain,
                replacement_for_order_id=replacement_for_order_id,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State transition gate
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.current_status)

    @property
    def holds_pharmacy_slot(self) -> bool:
        return bool(self.pharmacy_id) and self.current_status in SLOT_HOLDING_STATUSES

    def _assert_can_transition(self, target: OrderStatus) -> None:
        if not can_transition(self.current_status, target):
            raise IllegalTransitionError(self.status, target.value)

    def transition_to(self, target: OrderStatus, at: datetime | None = None) -> datetime:
        """Move to ``target`` and stamp its timestamp. Returns the time used."""
        self._assert_can_transition(target)
        now = at or utcnow()
        self.status = target.value
        setattr(self, STATUS_TIMESTAMP_FIELDS[target], now)
        self.updated_at = now
        return now

    def _assert_status(self, *allowed: OrderStatus, message: str) -> None:
        if self.current_status not in allowed:
            raise ValidationError({"status": [message]})

    def _assert_owner(self, patient_id: str) -> None:
        if str(self.patient_id) != str(patient_id):
            raise PermissionDeniedError("Only the patient who placed the order may do this", actor_id=patient_id)

    @property
    def medication_list(self) -> list[dict]:
        return list(self.medications or [])

    @property
    def rejected_by_pharmacies(self) -> list[str]:
        return [str(pid) for pid in (self.rejected_pharmacy_ids or [])]

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    def assign_to(self, pharmacy_id: str) -> None:
        now = self.transition_to(OrderStatus.ASSIGNED)
        self.pharmacy_id = pharmacy_id
        self.raise_(
            PharmacyOrderAssigned(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=pharmacy_id,
                patient_id=str(self.patient_id),
                requires_cold_chain=bool(self.requires_cold_chain),
                is_reassignment=self.previous_pharmacy_id is not None,
                assigned_at=now,
            )
        )

    def accept(self, staff_id: str) -> None:
        now = self.transition_to(OrderStatus.PHARMACY_ACCEPTED)
        self.accepted_by_staff_id = staff_id
        self.raise_(
            OrderAcceptedByPharmacy(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=str(self.pharmacy_id),
                patient_id=str(self.patient_id),
                accepted_by=staff_id,
                accepted_at=now,
            )
        )

    def reject(self, reason: str, staff_id: str | None = None) -> None:
        """Record the pharmacy declining the order. ``staff_id`` is None for system reassignment."""
        now = self.transition_to(OrderStatus.PHARMACY_REJECTED)
        self.rejection_reason = reason
        self.rejected_by_staff_id = staff_id
        self.rejected_pharmacy_ids = self.rejected_by_pharmacies + [str(self.pharmacy_id)]
        self.raise_(
            OrderRejectedByPharmacy(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=str(self.pharmacy_id),
                patient_id=str(self.patient_id),
                doctor_id=self.doctor_id,
                reason=reason,
                rejected_by=staff_id,
                rejected_at=now,
            )
        )

    def return_to_pool(self, reason: str) -> str | None:
        """Detach from the current pharmacy ahead of reassignment. Returns that pharmacy's id."""
        previous = str(self.pharmacy_id) if self.pharmacy_id else None
        now = self.transition_to(OrderStatus.PENDING_ASSIGNMENT)
        self.previous_pharmacy_id = previous
        self.pharmacy_id = None
        self.raise_(
            OrderReturnedToPool(
                order_id=str(self.id),
                previous_pharmacy_id=previous,
                reason=reason,
                returned_at=now,
            )
        )
        return previous

    def record_reassignment_failure(self, reason: str) -> None:
        self.raise_(
            ReassignmentFailed(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_pharmacy_id=self.previous_pharmacy_id,
                reason=reason,
                failed_at=utcnow(),
            )
        )

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def start_preparation(self, staff_id: str) -> None:
        now = self.transition_to(OrderStatus.PREPARING)
        self.raise_(
            OrderPreparationStarted(
                order_id=str(self.id),
                pharmacy_id=str(self.pharmacy_id),
                started_by=staff_id,
                started_at=now,
            )
        )

    def report_stock_issue(self, staff_id: str, missing_items: list[str]) -> None:
        if not missing_items:
            raise ValidationError({"missing_items": ["At least one missing item is required"]})

        now = self.transition_to(OrderStatus.STOCK_ISSUE)
        self.stock_issue = StockIssue(
            missing_items=list(missing_items),
            reported_by=staff_id,
            reported_at=now,
        )
        self.raise_(
            StockIssueReported(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=str(self.pharmacy_id),
                patient_id=str(self.patient_id),
                missing_items=list(missing_items),
                reported_by=staff_id,
                reported_at=now,
            )
        )

    def propose_substitution(
        self,
        staff_id: str,
        original_medication: str,
        substitute_medication: str,
        reason: str,
    ) -> None:
        now = self.transition_to(OrderStatus.AWAITING_SUBSTITUTION_APPROVAL)
        self.substitution = SubstitutionProposal(
            original_medication=original_medication,
            substitute_medication=substitute_medication,
            reason=reason,
            proposed_by=staff_id,
            proposed_at=now,
            decision=SubstitutionDecision.PENDING.value,
        )
        self.raise_(
            SubstitutionProposed(
                order_id=str(self.id),
                order_number=self.order_number,
                doctor_id=self.doctor_id,
                original_medication=original_medication,
                substitute_medication=substitute_medication,
                reason=reason,
                proposed_by=staff_id,
                proposed_at=now,
            )
        )

    def _decide_substitution(self, doctor_id: str, decision: SubstitutionDecision, reason: str | None, at) -> None:
        current = self.substitution
        self.substitution = SubstitutionProposal(
            original_medication=current.original_medication if current else None,
            substitute_medication=current.substitute_medication if current else None,
            reason=current.reason if current else None,
            proposed_by=current.proposed_by if current else None,
            proposed_at=current.proposed_at if current else None,
            decision=decision.value,
            decided_by=doctor_id,
            decided_at=at,
            decision_reason=reason,
        )

    def _assert_prescriber(self, doctor_id: str) -> None:
        if self.doctor_id and str(self.doctor_id) != str(doctor_id):
            raise PermissionDeniedError("Only the prescribing doctor may decide on a substitution", actor_id=doctor_id)

    def approve_substitution(self, doctor_id: str) -> None:
        self._assert_prescriber(doctor_id)
        now = self.transition_to(OrderStatus.PREPARING)
        self._decide_substitution(doctor_id, SubstitutionDecision.APPROVED, None, now)
        self.raise_(
            SubstitutionApproved(
                order_id=str(self.id),
                pharmacy_id=str(self.pharmacy_id),
                patient_id=str(self.patient_id),
                approved_by=doctor_id,
                approved_at=now,
            )
        )

    def reject_substitution(self, doctor_id: str, reason: str) -> None:
        self._assert_prescriber(doctor_id)
        now = self.transition_to(OrderStatus.STOCK_ISSUE)
        self._decide_substitution(doctor_id, SubstitutionDecision.REJECTED, reason, now)
        self.raise_(
            SubstitutionRejected(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=str(self.pharmacy_id),
                rejected_by=doctor_id,
                reason=reason,
                rejected_at=now,
            )
        )

    def confirm_discreet_packaging(self, staff_id: str) -> None:
        """Set the packaging flag. It cannot be withdrawn once set."""
        if self.is_terminal:
            raise ValidationError({"status": ["Cannot confirm packaging on a closed order"]})
        if self.is_discreet_packaging_confirmed:
            return

        now = utcnow()
        self.is_discreet_packaging_confirmed = True
        self.discreet_packaging_confirmed_by = staff_id
        self.updated_at = now
        self.raise_(DiscreetPackagingConfirmed(order_id=str(self.id), confirmed_by=staff_id, confirmed_at=now))

    def mark_ready_for_pickup(self, staff_id: str) -> None:
        if not self.is_discreet_packaging_confirmed:
            raise ValidationError(
                {"is_discreet_packaging_confirmed": ["Discreet packaging must be confirmed before pickup"]}
            )

        now = self.transition_to(OrderStatus.READY_FOR_PICKUP)
        if not self.delivery_otp:
            self.delivery_otp = generate_delivery_otp()
        self.raise_(
            OrderReadyForPickup(
                order_id=str(self.id),
                pharmacy_id=str(self.pharmacy_id),
                marked_by=staff_id,
                ready_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    @property
    def latest_tracking_entry(self) -> DeliveryTrackingEntry | None:
        entries = list(self.tracking_entries or [])
        if not entries:
            return None
        return max(entries, key=lambda e: (e.attempt_number or 0, as_utc(e.created_at) or utcnow()))

    def dispatch(self, courier_name: str | None = None, courier_phone: str | None = None) -> DeliveryTrackingEntry:
        now = self.transition_to(OrderStatus.OUT_FOR_DELIVERY)
        attempt = (self.delivery_attempts or 0) + 1
        entry = DeliveryTrackingEntry(
            status=TrackingStatus.PICKED_UP.value,
            attempt_number=attempt,
            is_cold_chain=bool(self.requires_cold_chain),
            courier_name=courier_name,
            courier_phone=courier_phone,
            status_updated_at=now,
            created_at=now,
        )
        self.add_tracking_entries(entry)
        self.raise_(
            OrderDispatched(
                order_id=str(self.id),
                order_number=self.order_number,
                patient_id=str(self.patient_id),
                attempt_number=attempt,
                courier_name=courier_name,
                courier_phone=courier_phone,
                is_cold_chain=bool(self.requires_cold_chain),
                dispatched_at=now,
            )
        )
        return entry

    def update_delivery_status(self, status: str, notes: str | None = None) -> None:
        try:
            tracking_status = TrackingStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown delivery status: {status}"]}) from None
        if tracking_status not in COURIER_REPORTABLE_STATUSES:
            raise ValidationError({"status": [f"{status} cannot be reported by the courier"]})
        self._assert_status(
            OrderStatus.OUT_FOR_DELIVERY,
            message="Delivery status can only be updated while out for delivery",
        )

        entry = self.latest_tracking_entry
        if entry is None:
            raise ObjectNotFoundError({"_entity": [f"No tracking entry for order {self.id}"]})

        now = utcnow()
        entry.status = tracking_status.value
        entry.status_updated_at = now
        if notes:
            entry.notes = notes
        self.updated_at = now
        self.raise_(
            DeliveryStatusUpdated(
                order_id=str(self.id),
                patient_id=str(self.patient_id),
                tracking_status=tracking_status.value,
                attempt_number=entry.attempt_number,
                notes=notes,
                updated_at=now,
            )
        )

    def confirm_delivery(self, otp: str) -> None:
        """Complete delivery. The OTP must match exactly; a mismatch changes nothing."""
        self._assert_can_transition(OrderStatus.DELIVERED)
        if not self.delivery_otp or str(otp) != self.delivery_otp:
            raise ValidationError({"otp": ["Invalid delivery OTP"]})

        now = self.transition_to(OrderStatus.DELIVERED)
        entry = self.latest_tracking_entry
        if entry is not None:
            entry.status = TrackingStatus.DELIVERED.value
            entry.otp_verified = True
            entry.actual_delivery_at = now
            entry.status_updated_at = now
        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=str(self.pharmacy_id),
                patient_id=str(self.patient_id),
                attempt_number=entry.attempt_number if entry else (self.delivery_attempts or 0) + 1,
                delivered_at=now,
            )
        )

    def record_delivery_failure(self, reason: str) -> OrderStatus:
        """Count a failed attempt. Cold-chain orders fail outright; others get one retry."""
        attempts = (self.delivery_attempts or 0) + 1
        is_final = bool(self.requires_cold_chain) or attempts >= MAX_STANDARD_DELIVERY_ATTEMPTS
        target = OrderStatus.DELIVERY_FAILED if is_final else OrderStatus.DELIVERY_ATTEMPTED

        now = self.transition_to(target)
        self.delivery_attempts = attempts
        entry = self.latest_tracking_entry
        if entry is not None:
            entry.status = TrackingStatus.FAILED.value
            entry.failure_reason = reason
            entry.status_updated_at = now
        self.raise_(
            DeliveryAttemptFailed(
                order_id=str(self.id),
                order_number=self.order_number,
                patient_id=str(self.patient_id),
                attempt_number=attempts,
                reason=reason,
                is_cold_chain=bool(self.requires_cold_chain),
                is_final=is_final,
                failed_at=now,
            )
        )
        return target

    def update_delivery_address(self, patient_id: str, address: str, pincode: str, city: str | None = None) -> None:
        self._assert_owner(patient_id)
        if self.current_status not in PRE_DISPATCH_STATUSES:
            raise ValidationError({"status": ["Delivery address can only be changed before dispatch"]})

        now = utcnow()
        self.delivery_address = address
        self.delivery_pincode = pincode
        if city:
            self.delivery_city = city
        self.updated_at = now
        self.raise_(
            DeliveryAddressUpdated(
                order_id=str(self.id),
                delivery_address=address,
                delivery_city=self.delivery_city,
                delivery_pincode=pincode,
                updated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Returns and exceptions
    # -------------------------------------------------------------------
    def report_damage(self, patient_id: str, photo_urls: list[str], description: str) -> None:
        self._assert_owner(patient_id)
        now = self.transition_to(OrderStatus.DAMAGE_REPORTED)
        self.damage_report = DamageReport(
            photo_urls=list(photo_urls),
            description=description,
            reported_at=now,
        )
        self.raise_(
            DamageReported(
                order_id=str(self.id),
                order_number=self.order_number,
                patient_id=str(self.patient_id),
                photo_count=len(photo_urls),
                description=description,
                reported_at=now,
            )
        )

    def approve_damage(self, operator_id: str) -> None:
        self._assert_status(OrderStatus.DAMAGE_REPORTED, message="Only reported damage can be approved")
        now = self.transition_to(OrderStatus.DAMAGE_APPROVED)
        report = self.damage_report
        self.damage_report = DamageReport(
            photo_urls=list(report.photo_urls or []) if report else [],
            description=report.description if report else None,
            reported_at=report.reported_at if report else None,
            approved_by=operator_id,
            approved_at=now,
        )
        self.raise_(
            DamageReportApproved(
                order_id=str(self.id),
                patient_id=str(self.patient_id),
                approved_by=operator_id,
                approved_at=now,
            )
        )

    def accept_return(self, patient_id: str, reason: str, package_opened: bool, as_of: datetime | None = None) -> None:
        self._assert_owner(patient_id)
        self._assert_status(OrderStatus.DELIVERED, message="Only delivered orders can be returned")
        if package_opened:
            raise ValidationError({"package_opened": ["Opened medication cannot be returned"]})

        now = as_of or utcnow()
        if hours_between(self.delivered_at, now) > RETURN_WINDOW_HOURS:
            raise ValidationError({"delivered_at": [f"Returns are accepted within {RETURN_WINDOW_HOURS} hours of delivery"]})

        self.transition_to(OrderStatus.RETURN_ACCEPTED, at=now)
        self.return_reason = reason
        self.is_package_opened = False
        self.raise_(
            ReturnAccepted(
                order_id=str(self.id),
                patient_id=str(self.patient_id),
                reason=reason,
                returned_at=now,
            )
        )

    def record_cold_chain_breach(self) -> None:
        if not self.requires_cold_chain:
            raise ValidationError({"requires_cold_chain": ["Order does not require cold-chain handling"]})

        now = self.transition_to(OrderStatus.COLD_CHAIN_BREACH)
        self.raise_(
            ColdChainBreachRecorded(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=self.pharmacy_id,
                patient_id=str(self.patient_id),
                recorded_at=now,
            )
        )

    def cancel(self, reason: str, cancelled_by: str | None = None) -> None:
        now = self.transition_to(OrderStatus.CANCELLED)
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.raise_(
            PharmacyOrderCancelled(
                order_id=str(self.id),
                order_number=self.order_number,
                patient_id=str(self.patient_id),
                pharmacy_id=self.pharmacy_id,
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # SLA
    # -------------------------------------------------------------------
    def has_breach(self, breach_type: SlaBreachType) -> bool:
        return any(b.breach_type == breach_type.value for b in (self.sla_breaches or []))

    def record_sla_breach(
        self,
        breach_type: SlaBreachType,
        elapsed_hours: float,
        limit_hours: float,
        detected_at: datetime | None = None,
    ) -> bool:
        """Add a breach unless one of the same type is already on record."""
        if self.has_breach(breach_type):
            return False

        now = detected_at or utcnow()
        self.add_sla_breaches(
            SlaBreach(
                breach_type=breach_type.value,
                detected_at=now,
                elapsed_hours=elapsed_hours,
                limit_hours=limit_hours,
            )
        )
        self.updated_at = now
        self.raise_(
            SlaBreachDetected(
                order_id=str(self.id),
                order_number=self.order_number,
                pharmacy_id=self.pharmacy_id,
                breach_type=breach_type.value,
                elapsed_hours=elapsed_hours,
                limit_hours=limit_hours,
                detected_at=now,
            )
        )
        return True
