import os
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest


@pytest.fixture(scope="session")
def _pharmacy_domain(request):
    """Initialize the pharmacy domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from pharmacy.domain import pharmacy

    pharmacy.init()
    return pharmacy


@pytest.fixture(scope="session", autouse=True)
def setup_db(_pharmacy_domain):
    from pharmacy.utils.db import drop_db, setup_db

    setup_db(_pharmacy_domain)

    yield

    drop_db(_pharmacy_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_pharmacy_domain):
    """Push domain context and fresh adapters before each test, cleanup after."""
    from pharmacy.messaging import reset_messaging
    from pharmacy.prescription import reset_prescription_lookup

    reset_messaging()
    reset_prescription_lookup()
    ctx = _pharmacy_domain.domain_context()
    ctx.push()

    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    ctx.pop()


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
@pytest.fixture
def lookup():
    from pharmacy.prescription import get_prescription_lookup

    return get_prescription_lookup()


@pytest.fixture
def outbox():
    from pharmacy.messaging import get_outbox

    return get_outbox()


@pytest.fixture
def notifier():
    from pharmacy.messaging import get_notifier

    return get_notifier()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture
def register_pharmacy():
    """Register an active pharmacy through the command path; returns its id."""
    from protean import current_domain

    from pharmacy.pharmacy.registry import RegisterPharmacy, VerifyColdChain

    counter = {"n": 0}

    def _register(
        city="Bengaluru",
        pincode="560001",
        daily_order_limit=20,
        cold_chain_verified=False,
        license_expiry=None,
        queue_size=0,
        **overrides,
    ):
        counter["n"] += 1
        name = overrides.pop("name", f"Pharmacy {counter['n']}")
        capability = overrides.pop("has_cold_chain_capability", False) or cold_chain_verified
        pharmacy_id = current_domain.process(
            RegisterPharmacy(
                name=name,
                city=city,
                pincode=pincode,
                daily_order_limit=daily_order_limit,
                drug_license_number=f"DL-{counter['n']:04d}",
                drug_license_expiry=license_expiry or datetime.now(UTC) + timedelta(days=365),
                has_cold_chain_capability=capability,
                **overrides,
            ),
            asynchronous=False,
        )
        if cold_chain_verified:
            current_domain.process(VerifyColdChain(pharmacy_id=pharmacy_id, verified_by="ops-1"), asynchronous=False)
        if queue_size:
            from pharmacy.pharmacy.pharmacy import Pharmacy

            repo = current_domain.repository_for(Pharmacy)
            ph = repo.get(pharmacy_id)
            ph.current_queue_size = queue_size
            repo.add(ph)
        return pharmacy_id

    return _register


@pytest.fixture
def add_staff():
    """Add a staff member; defaults to a pharmacist with every permission."""
    from protean import current_domain

    from pharmacy.pharmacy.registry import AddPharmacyStaff

    def _add(pharmacy_id, role="Pharmacist", can_accept_orders=None, can_dispense=True, can_manage_inventory=True, **kw):
        if can_accept_orders is None:
            can_accept_orders = role == "Pharmacist"
        return current_domain.process(
            AddPharmacyStaff(
                pharmacy_id=pharmacy_id,
                name=kw.pop("name", f"{role} {pharmacy_id[:6]}"),
                role=role,
                can_accept_orders=can_accept_orders,
                can_dispense=can_dispense,
                can_manage_inventory=can_manage_inventory,
                **kw,
            ),
            asynchronous=False,
        )

    return _add


@pytest.fixture
def add_prescription(lookup):
    """Register a prescription with the fake lookup; returns its id."""
    counter = {"n": 0}

    def _add(medications=None, city="Bengaluru", pincode="560001", patient_id="patient-1", doctor_id="doctor-1", **kw):
        counter["n"] += 1
        prescription_id = kw.pop("prescription_id", f"rx-{counter['n']:03d}")
        lookup.add_prescription(
            prescription_id=prescription_id,
            patient_id=patient_id,
            doctor_id=doctor_id,
            medications=medications or [{"name": "Metformin 500mg", "generic_name": "metformin", "quantity": 30}],
            delivery_city=city,
            delivery_pincode=pincode,
            **kw,
        )
        return prescription_id

    return _add


@pytest.fixture
def assigned_order(register_pharmacy, add_staff, add_prescription):
    """One pharmacy with a full-permission pharmacist, and an order assigned to it."""
    from protean import current_domain

    from pharmacy.order.assignment import AssignPharmacy

    def _build(medications=None, cold_chain=False, **prescription_kw):
        pharmacy_id = register_pharmacy(cold_chain_verified=cold_chain)
        staff_id = add_staff(pharmacy_id)
        if cold_chain and medications is None:
            medications = [{"name": "Ozempic", "generic_name": "semaglutide"}]
        prescription_id = add_prescription(medications=medications, **prescription_kw)
        result = current_domain.process(AssignPharmacy(prescription_id=prescription_id), asynchronous=False)
        assert result.assigned, result
        return SimpleNamespace(
            order_id=result.pharmacy_order_id,
            pharmacy_id=pharmacy_id,
            staff_id=staff_id,
            prescription_id=prescription_id,
            patient_id=prescription_kw.get("patient_id", "patient-1"),
            doctor_id=prescription_kw.get("doctor_id", "doctor-1"),
        )

    return _build


@pytest.fixture
def advance():
    """Drive an order through the workflow commands up to ``target``."""
    from protean import current_domain

    from pharmacy.order.acceptance import AcceptOrder
    from pharmacy.order.delivery import ConfirmDelivery, DispatchOrder
    from pharmacy.order.order import PharmacyOrder
    from pharmacy.order.preparation import ConfirmDiscreetPackaging, MarkReadyForPickup, StartPreparation

    steps = [
        ("Pharmacy_Accepted", lambda o: AcceptOrder(order_id=o.order_id, staff_id=o.staff_id)),
        ("Preparing", lambda o: StartPreparation(order_id=o.order_id, staff_id=o.staff_id)),
        ("Ready_For_Pickup", None),
        ("Out_For_Delivery", lambda o: DispatchOrder(order_id=o.order_id, courier_name="Ravi", courier_phone="+91-9000000000")),
        ("Delivered", None),
    ]

    def _advance(order, target):
        for status, make_command in steps:
            if status == "Ready_For_Pickup":
                current_domain.process(
                    ConfirmDiscreetPackaging(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False
                )
                current_domain.process(MarkReadyForPickup(order_id=order.order_id, staff_id=order.staff_id), asynchronous=False)
            elif status == "Delivered":
                otp = current_domain.repository_for(PharmacyOrder).get(order.order_id).delivery_otp
                current_domain.process(ConfirmDelivery(order_id=order.order_id, otp=otp), asynchronous=False)
            else:
                current_domain.process(make_command(order), asynchronous=False)
            if status == target:
                break
        return current_domain.repository_for(PharmacyOrder).get(order.order_id)

    return _advance
