"""Delivery tracking: commands and handler.

Covers courier pickup, progress updates, OTP-verified handover, failed
attempts, and the patient's pre-dispatch address change. A delivered order
gives its pharmacy back one unit of daily capacity.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder
from pharmacy.pharmacy.pharmacy import Pharmacy

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="PharmacyOrder")
class DispatchOrder:
    """A courier picked up the package."""

    order_id = Identifier(required=True)
    courier_name = String(max_length=200)
    courier_phone = String(max_length=50)


@pharmacy.command(part_of="PharmacyOrder")
class UpdateDeliveryStatus:
    """Courier progress on the current attempt (In_Transit or Arrived)."""

    order_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    notes = String(max_length=1000)


@pharmacy.command(part_of="PharmacyOrder")
class ConfirmDelivery:
    order_id = Identifier(required=True)
    otp = String(required=True, max_length=10)


@pharmacy.command(part_of="PharmacyOrder")
class ReportDeliveryFailure:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)


@pharmacy.command(part_of="PharmacyOrder")
class UpdateDeliveryAddress:
    order_id = Identifier(required=True)
    patient_id = Identifier(required=True)
    address = String(required=True, max_length=500)
    pincode = String(required=True, max_length=20)
    city = String(max_length=100)


@pharmacy.command_handler(part_of=PharmacyOrder)
class DeliveryHandler:
    @handle(DispatchOrder)
    def dispatch_order(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        entry = order.dispatch(courier_name=command.courier_name, courier_phone=command.courier_phone)
        repo.save_transition(order, expected)
        logger.info("Order dispatched", order_id=str(order.id), attempt=entry.attempt_number)
        return order

    @handle(UpdateDeliveryStatus)
    def update_delivery_status(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        order.update_delivery_status(command.status, notes=command.notes)
        repo.add(order)
        return order

    @handle(ConfirmDelivery)
    def confirm_delivery(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        order.confirm_delivery(command.otp)

        pharmacy_repo = current_domain.repository_for(Pharmacy)
        ph = pharmacy_repo.get(order.pharmacy_id)
        ph.release_slot()

        repo.save_transition(order, expected)
        pharmacy_repo.add(ph)
        logger.info("Order delivered", order_id=str(order.id), pharmacy_id=str(ph.id))
        return order

    @handle(ReportDeliveryFailure)
    def report_delivery_failure(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        expected = order.current_status
        new_status = order.record_delivery_failure(command.reason)
        repo.save_transition(order, expected)
        logger.warning(
            "Delivery attempt failed",
            order_id=str(order.id),
            attempts=order.delivery_attempts,
            status=new_status.value,
            reason=command.reason,
        )
        return order

    @handle(UpdateDeliveryAddress)
    def update_delivery_address(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        order.update_delivery_address(
            patient_id=command.patient_id,
            address=command.address,
            pincode=command.pincode,
            city=command.city,
        )
        repo.add(order)
        return order
