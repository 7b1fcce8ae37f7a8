"""Tests for the Pharmacy aggregate: capacity, status, staff and inventory."""

import pytest
from protean.exceptions import ValidationError

from pharmacy.errors import PermissionDeniedError
from pharmacy.pharmacy.events import OrderSlotClaimed, PharmacyRegistered, PharmacySuspended
from pharmacy.pharmacy.pharmacy import Pharmacy, PharmacyStatus, StaffPermission, StaffRole


def _make_pharmacy(**overrides):
    defaults = {
        "name": "Apollo Indiranagar",
        "city": "Bengaluru",
        "pincode": "560038",
        "daily_order_limit": 2,
    }
    defaults.update(overrides)
    ph = Pharmacy.register(**defaults)
    ph._events.clear()
    return ph


class TestRegistration:
    def test_registered_active_by_default(self):
        ph = Pharmacy.register(name="A", city="Pune", pincode="411001")
        assert ph.status == PharmacyStatus.ACTIVE.value
        assert ph.current_queue_size == 0
        assert isinstance(ph._events[0], PharmacyRegistered)

    def test_registered_pending_when_not_activated(self):
        ph = Pharmacy.register(name="A", city="Pune", pincode="411001", activate=False)
        assert ph.status == PharmacyStatus.PENDING_VERIFICATION.value
        assert not ph.is_active

    def test_cold_chain_not_verified_on_registration(self):
        ph = _make_pharmacy(has_cold_chain_capability=True)
        assert ph.cold_chain_verified is False


class TestCapacity:
    def test_claim_increments_queue(self):
        ph = _make_pharmacy()
        ph.claim_slot()
        assert ph.current_queue_size == 1
        assert isinstance(ph._events[0], OrderSlotClaimed)

    def test_claim_refused_at_limit(self):
        ph = _make_pharmacy()
        ph.claim_slot()
        ph.claim_slot()
        assert not ph.has_capacity
        with pytest.raises(ValidationError) as exc_info:
            ph.claim_slot()
        assert "current_queue_size" in exc_info.value.messages
        assert ph.current_queue_size == 2

    def test_release_never_goes_below_zero(self):
        ph = _make_pharmacy()
        ph.release_slot()
        assert ph.current_queue_size == 0

    def test_claim_then_release_round_trip(self):
        ph = _make_pharmacy()
        ph.claim_slot()
        ph.release_slot()
        assert ph.current_queue_size == 0


class TestStatus:
    def test_suspend(self):
        ph = _make_pharmacy()
        ph.suspend("License under review")
        assert ph.status == PharmacyStatus.SUSPENDED.value
        assert ph.suspension_reason == "License under review"
        assert isinstance(ph._events[0], PharmacySuspended)

    def test_suspend_twice_is_refused(self):
        ph = _make_pharmacy()
        ph.suspend("Audit")
        with pytest.raises(ValidationError):
            ph.suspend("Audit again")

    def test_reactivate_clears_suspension(self):
        ph = _make_pharmacy()
        ph.suspend("Audit")
        ph.reactivate()
        assert ph.is_active
        assert ph.suspension_reason is None

    def test_reactivate_active_pharmacy_is_refused(self):
        with pytest.raises(ValidationError):
            _make_pharmacy().reactivate()

    def test_verify_cold_chain_requires_capability(self):
        with pytest.raises(ValidationError):
            _make_pharmacy().verify_cold_chain("ops-1")

    def test_verify_cold_chain(self):
        ph = _make_pharmacy(has_cold_chain_capability=True)
        ph.verify_cold_chain("ops-1")
        assert ph.cold_chain_verified is True
        assert ph.cold_chain_verified_at is not None


class TestStaff:
    def test_only_pharmacists_accept_orders(self):
        ph = _make_pharmacy()
        with pytest.raises(ValidationError):
            ph.add_staff_member("Tech", role=StaffRole.TECHNICIAN.value, can_accept_orders=True)

    def test_pharmacist_permissions(self):
        ph = _make_pharmacy()
        member = ph.add_staff_member("Asha", can_accept_orders=True, can_dispense=True)
        assert ph.authorize(str(member.id), StaffPermission.ACCEPT_ORDERS).id == member.id
        assert ph.authorize(str(member.id), StaffPermission.PHARMACIST).id == member.id
        with pytest.raises(PermissionDeniedError):
            ph.authorize(str(member.id), StaffPermission.MANAGE_INVENTORY)

    def test_dispenser_cannot_act_as_pharmacist(self):
        ph = _make_pharmacy()
        member = ph.add_staff_member("Ravi", role=StaffRole.DISPENSER.value, can_dispense=True)
        assert ph.authorize(str(member.id), StaffPermission.DISPENSE).id == member.id
        with pytest.raises(PermissionDeniedError):
            ph.authorize(str(member.id), StaffPermission.PHARMACIST)

    def test_unknown_staff_is_denied(self):
        with pytest.raises(PermissionDeniedError):
            _make_pharmacy().authorize("nobody", StaffPermission.DISPENSE)

    def test_deactivated_staff_is_denied(self):
        ph = _make_pharmacy()
        member = ph.add_staff_member("Asha", can_accept_orders=True)
        ph.deactivate_staff_member(str(member.id), "Left")
        with pytest.raises(PermissionDeniedError):
            ph.authorize(str(member.id), StaffPermission.ACCEPT_ORDERS)
        assert ph.order_acceptors() == []

    def test_order_acceptors(self):
        ph = _make_pharmacy()
        acceptor = ph.add_staff_member("Asha", can_accept_orders=True)
        ph.add_staff_member("Ravi", role=StaffRole.DISPENSER.value, can_dispense=True)
        assert [str(s.id) for s in ph.order_acceptors()] == [str(acceptor.id)]


class TestInventory:
    def test_upsert_creates_then_updates(self):
        ph = _make_pharmacy()
        ph.upsert_inventory("Metformin 500mg", True, 100, updated_by="staff-1")
        ph.upsert_inventory("metformin 500MG", False, 0, updated_by="staff-2")
        assert len(ph.inventory) == 1
        entry = ph.find_inventory("METFORMIN 500mg")
        assert entry.is_in_stock is False
        assert entry.last_updated_by == "staff-2"

    def test_mark_out_of_stock(self):
        ph = _make_pharmacy()
        ph.mark_out_of_stock(["Insulin Glargine", "Metformin"], updated_by="staff-1")
        assert {e.medication_name for e in ph.inventory} == {"Insulin Glargine", "Metformin"}
        assert all(not e.is_in_stock for e in ph.inventory)
