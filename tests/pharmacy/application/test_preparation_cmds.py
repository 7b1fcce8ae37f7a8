"""Application tests for preparation, packaging and pickup readiness."""

import re

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from pharmacy.errors import PermissionDeniedError
from pharmacy.order.order import PharmacyOrder
from pharmacy.order.preparation import ConfirmDiscreetPackaging, MarkReadyForPickup, StartPreparation
from pharmacy.order.states import OrderStatus


def _order(order_id):
    return current_domain.repository_for(PharmacyOrder).get(order_id)


class TestStartPreparation:
    def test_start_persists(self, assigned_order, advance):
        order = assigned_order()
        advance(order, "Pharmacy_Accepted")
        current_domain.process(StartPreparation(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)
        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.PREPARING.value
        assert reloaded.preparing_at is not None

    def test_dispenser_may_prepare(self, assigned_order, advance, add_staff):
        order = assigned_order()
        advance(order, "Pharmacy_Accepted")
        dispenser = add_staff(order.pharmacy_id, role="Dispenser")
        current_domain.process(StartPreparation(order_id=order.order_id, staff_id=dispenser), asynchronous=False)
        assert _order(order.order_id).status == OrderStatus.PREPARING.value

    def test_staff_without_dispense_permission(self, assigned_order, advance, add_staff):
        order = assigned_order()
        advance(order, "Pharmacy_Accepted")
        technician = add_staff(order.pharmacy_id, role="Technician", can_dispense=False)
        with pytest.raises(PermissionDeniedError):
            current_domain.process(StartPreparation(order_id=order.order_id, staff_id=technician), asynchronous=False)


class TestReadyForPickup:
    def test_requires_discreet_packaging(self, assigned_order, advance):
        order = assigned_order()
        advance(order, "Preparing")
        with pytest.raises(ValidationError) as exc_info:
            current_domain.process(
                MarkReadyForPickup(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False
            )
        assert "is_discreet_packaging_confirmed" in exc_info.value.messages
        assert _order(order.order_id).status == OrderStatus.PREPARING.value

    def test_ready_issues_otp(self, assigned_order, advance):
        order = assigned_order()
        advance(order, "Preparing")
        current_domain.process(
            ConfirmDiscreetPackaging(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False
        )
        current_domain.process(MarkReadyForPickup(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.READY_FOR_PICKUP.value
        assert reloaded.is_discreet_packaging_confirmed is True
        assert reloaded.discreet_packaging_confirmed_by == order.staff_id
        assert re.fullmatch(r"\d{4}", reloaded.delivery_otp)

    def test_packaging_needs_a_pharmacist(self, assigned_order, advance, add_staff):
        order = assigned_order()
        advance(order, "Preparing")
        dispenser = add_staff(order.pharmacy_id, role="Dispenser")
        with pytest.raises(PermissionDeniedError):
            current_domain.process(
                ConfirmDiscreetPackaging(order_id=order.order_id, staff_id=dispenser), asynchronous=False
            )
