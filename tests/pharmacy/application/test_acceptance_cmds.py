"""Application tests for AcceptOrder and RejectOrder."""

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError

from pharmacy.errors import IllegalTransitionError, PermissionDeniedError, TransitionConflictError
from pharmacy.messaging.alerts import AlertType
from pharmacy.order.acceptance import AcceptOrder, RejectOrder
from pharmacy.order.notifications import PATIENT_REASSIGNMENT_MESSAGE, NotificationType
from pharmacy.order.order import PharmacyOrder
from pharmacy.order.states import OrderStatus
from pharmacy.pharmacy.pharmacy import Pharmacy
from pharmacy.pharmacy.registry import DeactivatePharmacyStaff


def _order(order_id):
    return current_domain.repository_for(PharmacyOrder).get(order_id)


def _queue(pharmacy_id):
    return current_domain.repository_for(Pharmacy).get(pharmacy_id).current_queue_size


class TestAcceptOrder:
    def test_accept_persists(self, assigned_order):
        order = assigned_order()
        current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.PHARMACY_ACCEPTED.value
        assert reloaded.accepted_by_staff_id == order.staff_id
        assert reloaded.accepted_at is not None

    def test_patient_is_told(self, assigned_order, outbox):
        order = assigned_order()
        current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)
        [message] = outbox.pending_of_type(NotificationType.ORDER_ACCEPTED)
        assert message.recipient_id == order.patient_id

    def test_dispenser_cannot_accept(self, assigned_order, add_staff):
        order = assigned_order()
        dispenser = add_staff(order.pharmacy_id, role="Dispenser")
        with pytest.raises(PermissionDeniedError):
            current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=dispenser), asynchronous=False)
        assert _order(order.order_id).status == OrderStatus.ASSIGNED.value

    def test_pharmacist_without_accept_permission(self, assigned_order, add_staff):
        order = assigned_order()
        pharmacist = add_staff(order.pharmacy_id, can_accept_orders=False)
        with pytest.raises(PermissionDeniedError):
            current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=pharmacist), asynchronous=False)

    def test_staff_of_another_pharmacy(self, assigned_order, register_pharmacy, add_staff):
        order = assigned_order()
        outsider = add_staff(register_pharmacy(city="Mumbai"))
        with pytest.raises(PermissionDeniedError):
            current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=outsider), asynchronous=False)

    def test_deactivated_staff(self, assigned_order):
        order = assigned_order()
        current_domain.process(
            DeactivatePharmacyStaff(pharmacy_id=order.pharmacy_id, staff_id=order.staff_id, reason="Left"),
            asynchronous=False,
        )
        with pytest.raises(PermissionDeniedError):
            current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)

    def test_unknown_staff(self, assigned_order):
        order = assigned_order()
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(AcceptOrder(order_id=order.order_id, staff_id="ghost"), asynchronous=False)

    def test_unknown_order(self, assigned_order):
        order = assigned_order()
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(AcceptOrder(order_id="missing", staff_id=order.staff_id), asynchronous=False)

    def test_accept_twice_is_illegal(self, assigned_order):
        order = assigned_order()
        current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)
        with pytest.raises(IllegalTransitionError):
            current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)


class TestRejectOrder:
    def test_reject_reassigns_to_next_pharmacy(self, assigned_order, register_pharmacy):
        order = assigned_order()
        other = register_pharmacy(queue_size=4)

        result = current_domain.process(
            RejectOrder(order_id=order.order_id, staff_id=order.staff_id, reason="Out of stock"),
            asynchronous=False,
        )
        assert result.assigned is True
        assert result.pharmacy_id == other

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.ASSIGNED.value
        assert reloaded.pharmacy_id == other
        assert reloaded.rejected_by_staff_id == order.staff_id
        assert reloaded.rejection_reason == "Out of stock"
        assert reloaded.rejected_by_pharmacies == [order.pharmacy_id]

    def test_queue_sizes_round_trip(self, assigned_order, register_pharmacy):
        order = assigned_order()
        other = register_pharmacy(queue_size=4)
        assert _queue(order.pharmacy_id) == 1

        current_domain.process(
            RejectOrder(order_id=order.order_id, staff_id=order.staff_id, reason="Closing early"),
            asynchronous=False,
        )
        assert _queue(order.pharmacy_id) == 0
        assert _queue(other) == 5

    def test_doctor_and_patient_are_told(self, assigned_order, register_pharmacy, outbox):
        order = assigned_order()
        register_pharmacy()
        current_domain.process(
            RejectOrder(order_id=order.order_id, staff_id=order.staff_id, reason="Out of stock"),
            asynchronous=False,
        )
        [doctor_message] = outbox.pending_of_type(NotificationType.ORDER_REJECTED_DOCTOR)
        assert doctor_message.recipient_id == order.doctor_id
        assert "Out of stock" in doctor_message.body

        [patient_message] = outbox.pending_of_type(NotificationType.ORDER_REJECTED_PATIENT)
        assert patient_message.recipient_id == order.patient_id
        assert patient_message.body == PATIENT_REASSIGNMENT_MESSAGE

    def test_rejecting_pharmacy_is_never_chosen_again(self, assigned_order, register_pharmacy, add_staff):
        order = assigned_order()
        second = register_pharmacy(queue_size=5)
        second_staff = add_staff(second)

        current_domain.process(
            RejectOrder(order_id=order.order_id, staff_id=order.staff_id, reason="Busy"), asynchronous=False
        )
        result = current_domain.process(
            RejectOrder(order_id=order.order_id, staff_id=second_staff, reason="Busy too"), asynchronous=False
        )
        assert result.assigned is False

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.PENDING_ASSIGNMENT.value
        assert set(reloaded.rejected_by_pharmacies) == {order.pharmacy_id, second}
        assert _queue(order.pharmacy_id) == 0
        assert _queue(second) == 5

    def test_no_alternative_alerts_operators(self, assigned_order, outbox):
        order = assigned_order()
        result = current_domain.process(
            RejectOrder(order_id=order.order_id, staff_id=order.staff_id, reason="Out of stock"),
            asynchronous=False,
        )
        assert result.assigned is False
        assert result.reason == "no_eligible_pharmacy"
        assert _order(order.order_id).status == OrderStatus.PENDING_ASSIGNMENT.value
        [alert] = outbox.pending_of_type(AlertType.REASSIGNMENT_FAILED)
        assert alert.data["order_id"] == order.order_id

    def test_cannot_reject_after_accepting(self, assigned_order):
        order = assigned_order()
        current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)
        with pytest.raises(IllegalTransitionError):
            current_domain.process(
                RejectOrder(order_id=order.order_id, staff_id=order.staff_id, reason="Changed mind"),
                asynchronous=False,
            )


class TestConcurrentTransitions:
    def test_stale_copy_cannot_overwrite(self, assigned_order):
        order = assigned_order()
        repo = current_domain.repository_for(PharmacyOrder)
        stale = repo.get(order.order_id)

        current_domain.process(AcceptOrder(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)

        with pytest.raises(TransitionConflictError) as exc_info:
            repo.save_transition(stale, OrderStatus.ASSIGNED)
        assert exc_info.value.actual == OrderStatus.PHARMACY_ACCEPTED.value
        assert _order(order.order_id).status == OrderStatus.PHARMACY_ACCEPTED.value
