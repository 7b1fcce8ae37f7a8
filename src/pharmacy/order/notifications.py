"""Order event handler: turns order lifecycle events into outbound messages.

Runs after the order change has been committed. Everything it does goes
through the outbox, which never raises, so a messaging problem cannot undo an
order transition.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from pharmacy.domain import pharmacy
from pharmacy.messaging import get_operator_sink, get_outbox
from pharmacy.messaging.alerts import AlertType
from pharmacy.messaging.notification import RecipientRole
from pharmacy.order.events import (
    ColdChainBreachRecorded,
    DamageReportApproved,
    DamageReported,
    DeliveryAttemptFailed,
    DeliveryStatusUpdated,
    OrderAcceptedByPharmacy,
    OrderDelivered,
    OrderDispatched,
    OrderRejectedByPharmacy,
    PharmacyOrderAssigned,
    PharmacyOrderCancelled,
    ReassignmentFailed,
    ReturnAccepted,
    SlaBreachDetected,
    StockIssueReported,
    SubstitutionApproved,
    SubstitutionProposed,
    SubstitutionRejected,
)
from pharmacy.order.order import PharmacyOrder, TrackingStatus
from pharmacy.pharmacy.pharmacy import Pharmacy

logger = structlog.get_logger(__name__)

PATIENT_REASSIGNMENT_MESSAGE = "Your order is being reassigned to another pharmacy for faster processing."


class NotificationType:
    ORDER_ASSIGNED = "PHARMACY_ORDER_ASSIGNED"
    ORDER_ACCEPTED = "PHARMACY_ORDER_ACCEPTED"
    ORDER_REJECTED_DOCTOR = "PHARMACY_ORDER_REJECTED_DOCTOR"
    ORDER_REJECTED_PATIENT = "PHARMACY_ORDER_REJECTED_PATIENT"
    SUBSTITUTION_APPROVAL_NEEDED = "SUBSTITUTION_APPROVAL_NEEDED"
    SUBSTITUTION_APPROVED = "SUBSTITUTION_APPROVED"
    ORDER_DISPATCHED = "ORDER_DISPATCHED"
    DELIVERY_ARRIVED = "DELIVERY_ARRIVED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    DELIVERY_ATTEMPT_FAILED = "DELIVERY_ATTEMPT_FAILED"
    DAMAGE_REPLACEMENT_APPROVED = "DAMAGE_REPLACEMENT_APPROVED"
    COLD_CHAIN_REPLACEMENT = "COLD_CHAIN_REPLACEMENT"
    RETURN_ACCEPTED = "RETURN_ACCEPTED"
    ORDER_CANCELLED = "ORDER_CANCELLED"


def _notify_patient(patient_id, event_type: str, title: str, body: str, **data) -> None:
    get_outbox().publish(patient_id, RecipientRole.PATIENT, event_type, title, body, data)


def _staff_recipient(member) -> str:
    """The login account to notify for ``member``; the staff record id when no account is linked."""
    if member.user_id:
        return str(member.user_id)
    logger.warning("Staff member has no linked user account", staff_id=str(member.id))
    return str(member.id)


def _otp_for(order_id: str) -> str | None:
    return current_domain.repository_for(PharmacyOrder).get(order_id).delivery_otp


@pharmacy.event_handler(part_of=PharmacyOrder)
class OrderNotificationsHandler:
    """Addresses patients, doctors, pharmacy staff and operators as orders move."""

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    @handle(PharmacyOrderAssigned)
    def on_order_assigned(self, event: PharmacyOrderAssigned) -> None:
        ph = current_domain.repository_for(Pharmacy).get(event.pharmacy_id)
        acceptors = ph.order_acceptors()
        if not acceptors:
            logger.warning("Assigned pharmacy has no staff able to accept orders", pharmacy_id=str(ph.id))
        for member in acceptors:
            get_outbox().publish(
                _staff_recipient(member),
                RecipientRole.PHARMACY_STAFF,
                NotificationType.ORDER_ASSIGNED,
                "New prescription order",
                f"Order {event.order_number} has been assigned to {ph.name}."
                + (" Cold-chain handling required." if event.requires_cold_chain else ""),
                {"order_id": str(event.order_id), "pharmacy_id": str(ph.id), "staff_id": str(member.id)},
            )

    @handle(OrderAcceptedByPharmacy)
    def on_order_accepted(self, event: OrderAcceptedByPharmacy) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.ORDER_ACCEPTED,
            "Order accepted",
            f"A pharmacy has accepted your order {event.order_number} and will start preparing it.",
            order_id=str(event.order_id),
        )

    @handle(OrderRejectedByPharmacy)
    def on_order_rejected(self, event: OrderRejectedByPharmacy) -> None:
        if event.doctor_id:
            get_outbox().publish(
                event.doctor_id,
                RecipientRole.DOCTOR,
                NotificationType.ORDER_REJECTED_DOCTOR,
                "Pharmacy declined an order",
                f"Order {event.order_number} was declined: {event.reason}",
                {"order_id": str(event.order_id), "pharmacy_id": str(event.pharmacy_id), "reason": event.reason},
            )
        _notify_patient(
            event.patient_id,
            NotificationType.ORDER_REJECTED_PATIENT,
            "Order update",
            PATIENT_REASSIGNMENT_MESSAGE,
            order_id=str(event.order_id),
        )

    @handle(ReassignmentFailed)
    def on_reassignment_failed(self, event: ReassignmentFailed) -> None:
        get_operator_sink().alert(
            AlertType.REASSIGNMENT_FAILED,
            "Reassignment failed",
            f"Order {event.order_number} could not be reassigned: {event.reason}",
            {"order_id": str(event.order_id), "previous_pharmacy_id": event.previous_pharmacy_id, "reason": event.reason},
        )

    # -------------------------------------------------------------------
    # Stock and substitutions
    # -------------------------------------------------------------------
    @handle(StockIssueReported)
    def on_stock_issue(self, event: StockIssueReported) -> None:
        get_operator_sink().alert(
            AlertType.STOCK_ISSUE,
            "Pharmacy stock issue",
            f"Pharmacy cannot fill order {event.order_number}.",
            {"order_id": str(event.order_id), "pharmacy_id": str(event.pharmacy_id), "missing_items": event.missing_items},
        )

    @handle(SubstitutionProposed)
    def on_substitution_proposed(self, event: SubstitutionProposed) -> None:
        if not event.doctor_id:
            logger.warning("Substitution proposed on an order without a prescriber", order_id=str(event.order_id))
            return
        get_outbox().publish(
            event.doctor_id,
            RecipientRole.DOCTOR,
            NotificationType.SUBSTITUTION_APPROVAL_NEEDED,
            "Substitution needs your approval",
            f"Order {event.order_number}: replace {event.original_medication} with "
            f"{event.substitute_medication}? Reason: {event.reason}",
            {"order_id": str(event.order_id)},
        )

    @handle(SubstitutionApproved)
    def on_substitution_approved(self, event: SubstitutionApproved) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.SUBSTITUTION_APPROVED,
            "Medication substitution approved",
            "Your doctor approved a substitute medication. Your order is being prepared.",
            order_id=str(event.order_id),
        )

    @handle(SubstitutionRejected)
    def on_substitution_rejected(self, event: SubstitutionRejected) -> None:
        get_operator_sink().alert(
            AlertType.SUBSTITUTION_REJECTED,
            "Substitution rejected",
            f"The prescriber rejected a substitution on order {event.order_number}. Manual intervention required.",
            {"order_id": str(event.order_id), "pharmacy_id": str(event.pharmacy_id), "reason": event.reason},
        )

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    @handle(OrderDispatched)
    def on_order_dispatched(self, event: OrderDispatched) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.ORDER_DISPATCHED,
            "Your order is on its way",
            f"Order {event.order_number} is out for delivery. "
            f"Share OTP {_otp_for(event.order_id)} with the delivery partner.",
            order_id=str(event.order_id),
            courier_name=event.courier_name,
            courier_phone=event.courier_phone,
        )

    @handle(DeliveryStatusUpdated)
    def on_delivery_status_updated(self, event: DeliveryStatusUpdated) -> None:
        if event.tracking_status != TrackingStatus.ARRIVED.value:
            return
        _notify_patient(
            event.patient_id,
            NotificationType.DELIVERY_ARRIVED,
            "Delivery partner has arrived",
            f"Please share OTP {_otp_for(event.order_id)} to receive your order.",
            order_id=str(event.order_id),
        )

    @handle(OrderDelivered)
    def on_order_delivered(self, event: OrderDelivered) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.ORDER_DELIVERED,
            "Order delivered",
            f"Order {event.order_number} has been delivered.",
            order_id=str(event.order_id),
        )

    @handle(DeliveryAttemptFailed)
    def on_delivery_attempt_failed(self, event: DeliveryAttemptFailed) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.DELIVERY_ATTEMPT_FAILED,
            "Delivery attempt failed",
            f"We could not deliver order {event.order_number}: {event.reason}",
            order_id=str(event.order_id),
        )
        if event.is_final:
            get_operator_sink().alert(
                AlertType.DELIVERY_FAILED,
                "Delivery failed",
                f"Order {event.order_number} failed delivery after {event.attempt_number} attempt(s).",
                {
                    "order_id": str(event.order_id),
                    "attempts": event.attempt_number,
                    "is_cold_chain": event.is_cold_chain,
                    "reason": event.reason,
                },
            )

    # -------------------------------------------------------------------
    # Returns and exceptions
    # -------------------------------------------------------------------
    @handle(DamageReported)
    def on_damage_reported(self, event: DamageReported) -> None:
        get_operator_sink().alert(
            AlertType.DAMAGE_REPORT_SUBMITTED,
            "Damage report submitted",
            f"Patient reported order {event.order_number} as damaged: {event.description}",
            {"order_id": str(event.order_id), "photo_count": event.photo_count},
        )

    @handle(DamageReportApproved)
    def on_damage_approved(self, event: DamageReportApproved) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.DAMAGE_REPLACEMENT_APPROVED,
            "Replacement approved",
            "Your damage report was approved. A free replacement is on its way.",
            order_id=str(event.order_id),
        )

    @handle(ColdChainBreachRecorded)
    def on_cold_chain_breach(self, event: ColdChainBreachRecorded) -> None:
        get_operator_sink().alert(
            AlertType.COLD_CHAIN_BREACH,
            "Cold-chain breach",
            f"Cold chain compromised on order {event.order_number}. Replacement created automatically.",
            {"order_id": str(event.order_id), "pharmacy_id": event.pharmacy_id},
        )
        _notify_patient(
            event.patient_id,
            NotificationType.COLD_CHAIN_REPLACEMENT,
            "Replacement on its way",
            "Your medication may not have been kept cold enough. Please do not use it; a free replacement is coming.",
            order_id=str(event.order_id),
        )

    @handle(ReturnAccepted)
    def on_return_accepted(self, event: ReturnAccepted) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.RETURN_ACCEPTED,
            "Return accepted",
            "Your return has been accepted.",
            order_id=str(event.order_id),
        )

    @handle(PharmacyOrderCancelled)
    def on_order_cancelled(self, event: PharmacyOrderCancelled) -> None:
        _notify_patient(
            event.patient_id,
            NotificationType.ORDER_CANCELLED,
            "Order cancelled",
            f"Order {event.order_number} was cancelled: {event.reason}",
            order_id=str(event.order_id),
        )

    # -------------------------------------------------------------------
    # SLA
    # -------------------------------------------------------------------
    @handle(SlaBreachDetected)
    def on_sla_breach(self, event: SlaBreachDetected) -> None:
        get_operator_sink().alert(
            AlertType.SLA_BREACH,
            f"{event.breach_type} SLA breached",
            f"Order {event.order_number} exceeded its {event.breach_type.lower()} limit "
            f"({event.elapsed_hours}h elapsed, {event.limit_hours}h allowed).",
            {
                "order_id": str(event.order_id),
                "pharmacy_id": event.pharmacy_id,
                "breach_type": event.breach_type,
                "elapsed_hours": event.elapsed_hours,
            },
        )
