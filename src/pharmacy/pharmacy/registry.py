"""Pharmacy registry: commands and handler.

The minimum surface needed to put pharmacies and their staff into the
assignment pool, verify cold-chain storage, and take a pharmacy out again.
Suspending a pharmacy hands its not-yet-accepted orders to other pharmacies.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from pharmacy.assignment.engine import AssignmentEngine
from pharmacy.domain import pharmacy
from pharmacy.errors import IllegalTransitionError
from pharmacy.order.order import PharmacyOrder
from pharmacy.order.states import OrderStatus
from pharmacy.pharmacy.pharmacy import DEFAULT_DAILY_ORDER_LIMIT, Pharmacy, StaffRole

logger = structlog.get_logger(__name__)


@pharmacy.command(part_of="Pharmacy")
class RegisterPharmacy:
    name = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    pincode = String(required=True, max_length=20)
    address = String(max_length=500)
    daily_order_limit = Integer(default=DEFAULT_DAILY_ORDER_LIMIT, min_value=1)
    drug_license_number = String(max_length=100)
    drug_license_expiry = DateTime()
    has_cold_chain_capability = Boolean(default=False)
    activate = Boolean(default=True)


@pharmacy.command(part_of="Pharmacy")
class AddPharmacyStaff:
    pharmacy_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    role = String(max_length=50, choices=StaffRole, default=StaffRole.PHARMACIST.value)
    user_id = Identifier()
    can_accept_orders = Boolean(default=False)
    can_dispense = Boolean(default=False)
    can_manage_inventory = Boolean(default=False)
    registration_number = String(max_length=100)
    registration_expiry = DateTime()


@pharmacy.command(part_of="Pharmacy")
class DeactivatePharmacyStaff:
    pharmacy_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@pharmacy.command(part_of="Pharmacy")
class VerifyColdChain:
    pharmacy_id = Identifier(required=True)
    verified_by = String(required=True, max_length=100)


@pharmacy.command(part_of="Pharmacy")
class SuspendPharmacy:
    pharmacy_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@pharmacy.command(part_of="Pharmacy")
class ReactivatePharmacy:
    pharmacy_id = Identifier(required=True)


@pharmacy.command_handler(part_of=Pharmacy)
class PharmacyRegistryHandler:
    @handle(RegisterPharmacy)
    def register_pharmacy(self, command):
        ph = Pharmacy.register(
            name=command.name,
            city=command.city,
            pincode=command.pincode,
            address=command.address,
            daily_order_limit=command.daily_order_limit or DEFAULT_DAILY_ORDER_LIMIT,
            drug_license_number=command.drug_license_number,
            drug_license_expiry=command.drug_license_expiry,
            has_cold_chain_capability=bool(command.has_cold_chain_capability),
            activate=command.activate is not False,
        )
        current_domain.repository_for(Pharmacy).add(ph)
        logger.info("Pharmacy registered", pharmacy_id=str(ph.id), city=ph.city, status=ph.status)
        return str(ph.id)

    @handle(AddPharmacyStaff)
    def add_pharmacy_staff(self, command):
        repo = current_domain.repository_for(Pharmacy)
        ph = repo.get(command.pharmacy_id)
        member = ph.add_staff_member(
            name=command.name,
            role=command.role or StaffRole.PHARMACIST.value,
            user_id=command.user_id,
            can_accept_orders=bool(command.can_accept_orders),
            can_dispense=bool(command.can_dispense),
            can_manage_inventory=bool(command.can_manage_inventory),
            registration_number=command.registration_number,
            registration_expiry=command.registration_expiry,
        )
        repo.add(ph)
        return str(member.id)

    @handle(DeactivatePharmacyStaff)
    def deactivate_pharmacy_staff(self, command):
        repo = current_domain.repository_for(Pharmacy)
        ph = repo.get(command.pharmacy_id)
        ph.deactivate_staff_member(command.staff_id, command.reason)
        repo.add(ph)
        return ph

    @handle(VerifyColdChain)
    def verify_cold_chain(self, command):
        repo = current_domain.repository_for(Pharmacy)
        ph = repo.get(command.pharmacy_id)
        ph.verify_cold_chain(command.verified_by)
        repo.add(ph)
        return ph

    @handle(SuspendPharmacy)
    def suspend_pharmacy(self, command):
        repo = current_domain.repository_for(Pharmacy)
        ph = repo.get(command.pharmacy_id)
        ph.suspend(command.reason)
        repo.add(ph)
        logger.warning("Pharmacy suspended", pharmacy_id=str(ph.id), reason=command.reason)

        engine = AssignmentEngine()
        engine.track(ph)
        order_repo = current_domain.repository_for(PharmacyOrder)
        reassigned = 0
        for order in order_repo.find_by_pharmacy(str(ph.id), OrderStatus.ASSIGNED):
            try:
                result = engine.reassign(order, f"Pharmacy suspended: {command.reason}")
                order_repo.save_transition(order, OrderStatus.ASSIGNED)
                reassigned += int(result.assigned)
            except (ValidationError, IllegalTransitionError) as exc:
                logger.warning("Failed to reassign order of suspended pharmacy", order_id=str(order.id), error=str(exc))
        return reassigned

    @handle(ReactivatePharmacy)
    def reactivate_pharmacy(self, command):
        repo = current_domain.repository_for(Pharmacy)
        ph = repo.get(command.pharmacy_id)
        ph.reactivate()
        repo.add(ph)
        return ph
