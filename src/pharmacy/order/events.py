"""PharmacyOrder domain events: immutable facts about order state changes.

All events are past tense and versioned. They carry the identifiers the
messaging handlers need to address patients, doctors, pharmacy staff and
operators without reloading the order.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, List, String

from pharmacy.domain import pharmacy


@pharmacy.event(part_of="PharmacyOrder")
class PharmacyOrderCreated:
    """A pharmacy order was opened for a prescription."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    prescription_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    requires_cold_chain = Boolean(required=True)
    replacement_for_order_id = Identifier()
    created_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class PharmacyOrderAssigned:
    """The order was placed with a pharmacy."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    requires_cold_chain = Boolean(required=True)
    is_reassignment = Boolean(default=False)
    assigned_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class OrderAcceptedByPharmacy:
    """A pharmacist accepted the order."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    accepted_by = Identifier(required=True)
    accepted_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class OrderRejectedByPharmacy:
    """The assigned pharmacy declined the order (staff decision or system reassignment)."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    doctor_id = Identifier()
    reason = String(required=True)
    rejected_by = Identifier()
    rejected_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class OrderReturnedToPool:
    """The order left its pharmacy and is waiting for a new assignment."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    previous_pharmacy_id = Identifier()
    reason = String(required=True)
    returned_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class ReassignmentFailed:
    """No other pharmacy could take a returned order."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    previous_pharmacy_id = Identifier()
    reason = String(required=True)
    failed_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class OrderPreparationStarted:
    """Dispensing began."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    pharmacy_id = Identifier(required=True)
    started_by = Identifier(required=True)
    started_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class StockIssueReported:
    """The pharmacy cannot fill one or more prescribed items."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    missing_items = List(content_type=String, required=True)
    reported_by = Identifier(required=True)
    reported_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class SubstitutionProposed:
    """A pharmacist asked the prescriber to approve a substitute medication."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    doctor_id = Identifier()
    original_medication = String(required=True)
    substitute_medication = String(required=True)
    reason = String(required=True)
    proposed_by = Identifier(required=True)
    proposed_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class SubstitutionApproved:
    """The prescriber approved the proposed substitute."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    pharmacy_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    approved_by = Identifier(required=True)
    approved_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class SubstitutionRejected:
    """The prescriber declined the proposed substitute."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier(required=True)
    rejected_by = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class DiscreetPackagingConfirmed:
    """Staff confirmed the package carries no identifying labels."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    confirmed_by = Identifier(required=True)
    confirmed_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class OrderReadyForPickup:
    """The package is sealed and waiting for a courier."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    pharmacy_id = Identifier(required=True)
    marked_by = Identifier(required=True)
    ready_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class OrderDispatched:
    """A courier collected the package."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    patient_id = Identifier(required=True)
    attempt_number = Integer(required=True)
    courier_name = String()
    courier_phone = String()
    is_cold_chain = Boolean(required=True)
    dispatched_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class DeliveryStatusUpdated:
    """The courier reported progress on the current attempt."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    tracking_status = String(required=True)
    attempt_number = Integer(required=True)
    notes = String()
    updated_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class OrderDelivered:
    """The patient presented the correct OTP and received the package."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    attempt_number = Integer(required=True)
    delivered_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class DeliveryAttemptFailed:
    """A delivery attempt did not reach the patient."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    patient_id = Identifier(required=True)
    attempt_number = Integer(required=True)
    reason = String(required=True)
    is_cold_chain = Boolean(required=True)
    is_final = Boolean(required=True)
    failed_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class DeliveryAddressUpdated:
    """The patient changed the delivery destination before dispatch."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    delivery_address = String(required=True)
    delivery_city = String()
    delivery_pincode = String(required=True)
    updated_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class DamageReported:
    """The patient reported the delivered package as damaged."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    patient_id = Identifier(required=True)
    photo_count = Integer(required=True)
    description = String(required=True)
    reported_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class DamageReportApproved:
    """An operator approved the damage claim; a free replacement follows."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    approved_by = Identifier(required=True)
    approved_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class ReturnAccepted:
    """An unopened package was accepted back inside the return window."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    reason = String(required=True)
    returned_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class ColdChainBreachRecorded:
    """A cold-chain shipment was compromised; replacement is automatic."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier()
    patient_id = Identifier(required=True)
    recorded_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class PharmacyOrderCancelled:
    """The order was cancelled before completion."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    patient_id = Identifier(required=True)
    pharmacy_id = Identifier()
    reason = String(required=True)
    cancelled_by = Identifier()
    cancelled_at = DateTime(required=True)


@pharmacy.event(part_of="PharmacyOrder")
class SlaBreachDetected:
    """A phase of the order ran past its time limit."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pharmacy_id = Identifier()
    breach_type = String(required=True)
    elapsed_hours = Float(required=True)
    limit_hours = Float(required=True)
    detected_at = DateTime(required=True)
