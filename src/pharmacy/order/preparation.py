"""Dispensing and packaging: commands and handler.

An order cannot be handed to a courier until discreet packaging has been
confirmed; marking it ready also issues the delivery OTP.
"""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.order.order import PharmacyOrder
from pharmacy.pharmacy.access import authorize_staff
from pharmacy.pharmacy.pharmacy import StaffPermission


@pharmacy.command(part_of="PharmacyOrder")
class StartPreparation:
    order_id = Identifier(required=True)
    staff_id = Identifier(required=True)


@pharmacy.command(part_of="PharmacyOrder")
class ConfirmDiscreetPackaging:
    order_id = Identifier(required=True)
    staff_id = Identifier(required=True)


@pharmacy.command(part_of="PharmacyOrder")
class MarkReadyForPickup:
    order_id = Identifier(required=True)
    staff_id = Identifier(required=True)


@pharmacy.command_handler(part_of=PharmacyOrder)
class PreparationHandler:
    @handle(StartPreparation)
    def start_preparation(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        authorize_staff(order.pharmacy_id, command.staff_id, StaffPermission.DISPENSE)

        expected = order.current_status
        order.start_preparation(command.staff_id)
        repo.save_transition(order, expected)
        return order

    @handle(ConfirmDiscreetPackaging)
    def confirm_discreet_packaging(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        authorize_staff(order.pharmacy_id, command.staff_id, StaffPermission.ACCEPT_ORDERS)

        order.confirm_discreet_packaging(command.staff_id)
        repo.add(order)
        return order

    @handle(MarkReadyForPickup)
    def mark_ready_for_pickup(self, command):
        repo = current_domain.repository_for(PharmacyOrder)
        order = repo.get(command.order_id)
        authorize_staff(order.pharmacy_id, command.staff_id, StaffPermission.DISPENSE)

        expected = order.current_status
        order.mark_ready_for_pickup(command.staff_id)
        repo.save_transition(order, expected)
        return order
