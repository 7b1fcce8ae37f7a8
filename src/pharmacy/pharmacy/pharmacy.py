"""Pharmacy aggregate (CQRS): a fulfilling pharmacy and its capacity.

A pharmacy takes part in assignment only while ACTIVE. Its daily capacity is
tracked as ``current_queue_size`` against ``daily_order_limit``: every
assignment claims one slot, and delivery, cancellation or reassignment
releases it. Staff permissions gate every action a pharmacy takes on an order.

Cold chain has two flags on purpose: ``has_cold_chain_capability`` is what the
pharmacy declares, ``cold_chain_verified`` is what an operator confirmed.
Only the second one qualifies a pharmacy for cold-chain orders.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String

from pharmacy.domain import pharmacy
from pharmacy.errors import PermissionDeniedError
from pharmacy.pharmacy.events import (
    ColdChainVerified,
    InventoryUpdated,
    OrderSlotClaimed,
    OrderSlotReleased,
    PharmacyReactivated,
    PharmacyRegistered,
    PharmacyStaffAdded,
    PharmacyStaffDeactivated,
    PharmacySuspended,
)


class PharmacyStatus(Enum):
    PENDING_VERIFICATION = "Pending_Verification"
    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    DEACTIVATED = "Deactivated"


class StaffRole(Enum):
    PHARMACIST = "Pharmacist"
    DISPENSER = "Dispenser"
    TECHNICIAN = "Technician"
    MANAGER = "Manager"


class StaffPermission(Enum):
    ACCEPT_ORDERS = "accept_orders"
    DISPENSE = "dispense"
    MANAGE_INVENTORY = "manage_inventory"
    PHARMACIST = "pharmacist"


DEFAULT_DAILY_ORDER_LIMIT = 50


def _utcnow():
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@pharmacy.entity(part_of="Pharmacy")
class PharmacyStaff:
    """A person who may act on orders for this pharmacy."""

    user_id = Identifier()
    name = String(required=True, max_length=200)
    role = String(max_length=50, choices=StaffRole, default=StaffRole.PHARMACIST.value)
    can_accept_orders = Boolean(default=False)
    can_dispense = Boolean(default=False)
    can_manage_inventory = Boolean(default=False)
    is_active = Boolean(default=True)
    registration_number = String(max_length=100)
    registration_expiry = DateTime()
    deactivation_reason = String(max_length=500)

    def has_permission(self, permission: StaffPermission) -> bool:
        if permission == StaffPermission.ACCEPT_ORDERS:
            return self.role == StaffRole.PHARMACIST.value and bool(self.can_accept_orders)
        if permission == StaffPermission.DISPENSE:
            return bool(self.can_dispense)
        if permission == StaffPermission.MANAGE_INVENTORY:
            return bool(self.can_manage_inventory)
        return self.role == StaffRole.PHARMACIST.value


@pharmacy.entity(part_of="Pharmacy")
class InventoryEntry:
    """Stock record for one medication at this pharmacy."""

    medication_name = String(required=True, max_length=255)
    generic_name = String(max_length=255)
    is_in_stock = Boolean(default=True)
    quantity = Integer(default=0, min_value=0)
    last_updated_by = String(max_length=100)
    last_updated_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@pharmacy.aggregate
class Pharmacy:
    name = String(required=True, max_length=255)
    address = String(max_length=500)
    city = String(required=True, max_length=100)
    pincode = String(required=True, max_length=20)
    status = String(
        max_length=50,
        choices=PharmacyStatus,
        default=PharmacyStatus.PENDING_VERIFICATION.value,
    )
    daily_order_limit = Integer(default=DEFAULT_DAILY_ORDER_LIMIT, min_value=1)
    current_queue_size = Integer(default=0, min_value=0)
    drug_license_number = String(max_length=100)
    drug_license_expiry = DateTime()
    has_cold_chain_capability = Boolean(default=False)
    cold_chain_verified = Boolean(default=False)
    cold_chain_verified_at = DateTime()
    suspension_reason = String(max_length=500)
    suspended_at = DateTime()
    staff = HasMany(PharmacyStaff)
    inventory = HasMany(InventoryEntry)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def register(
        cls,
        name: str,
        city: str,
        pincode: str,
        address: str | None = None,
        daily_order_limit: int = DEFAULT_DAILY_ORDER_LIMIT,
        drug_license_number: str | None = None,
        drug_license_expiry: datetime | None = None,
        has_cold_chain_capability: bool = False,
        activate: bool = True,
    ):
        """Register a pharmacy. Document verification happens elsewhere, so
        ``activate`` lets the caller place it straight into the pool."""
        now = _utcnow()
        status = PharmacyStatus.ACTIVE if activate else PharmacyStatus.PENDING_VERIFICATION
        ph = cls(
            name=name,
            address=address,
            city=city,
            pincode=pincode,
            status=status.value,
            daily_order_limit=daily_order_limit,
            current_queue_size=0,
            drug_license_number=drug_license_number,
            drug_license_expiry=drug_license_expiry,
            has_cold_chain_capability=has_cold_chain_capability,
            cold_chain_verified=False,
            created_at=now,
            updated_at=now,
        )
        ph.raise_(
            PharmacyRegistered(
                pharmacy_id=str(ph.id),
                name=name,
                city=city,
                pincode=pincode,
                status=status.value,
                daily_order_limit=daily_order_limit,
                registered_at=now,
            )
        )
        return ph

    @property
    def is_active(self) -> bool:
        return self.status == PharmacyStatus.ACTIVE.value

    @property
    def has_capacity(self) -> bool:
        return (self.current_queue_size or 0) < (self.daily_order_limit or 0)

    # -------------------------------------------------------------------
    # Capacity
    # -------------------------------------------------------------------
    def claim_slot(self) -> None:
        """Take one unit of daily capacity; refuses once the limit is reached."""
        if not self.has_capacity:
            raise ValidationError({"current_queue_size": ["Pharmacy has reached its daily order limit"]})

        now = _utcnow()
        self.current_queue_size = (self.current_queue_size or 0) + 1
        self.updated_at = now
        self.raise_(
            OrderSlotClaimed(
                pharmacy_id=str(self.id),
                queue_size=self.current_queue_size,
                daily_order_limit=self.daily_order_limit,
                claimed_at=now,
            )
        )

    def release_slot(self) -> None:
        """Give back one unit of capacity. The queue never goes below zero."""
        now = _utcnow()
        self.current_queue_size = max(0, (self.current_queue_size or 0) - 1)
        self.updated_at = now
        self.raise_(
            OrderSlotReleased(
                pharmacy_id=str(self.id),
                queue_size=self.current_queue_size,
                released_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------
    def suspend(self, reason: str) -> None:
        if self.status == PharmacyStatus.SUSPENDED.value:
            raise ValidationError({"status": ["Pharmacy is already suspended"]})
        if self.status == PharmacyStatus.DEACTIVATED.value:
            raise ValidationError({"status": ["Cannot suspend a deactivated pharmacy"]})

        now = _utcnow()
        self.status = PharmacyStatus.SUSPENDED.value
        self.suspension_reason = reason
        self.suspended_at = now
        self.updated_at = now
        self.raise_(
            PharmacySuspended(
                pharmacy_id=str(self.id),
                name=self.name,
                reason=reason,
                suspended_at=now,
            )
        )

    def reactivate(self) -> None:
        if self.status not in (PharmacyStatus.SUSPENDED.value, PharmacyStatus.PENDING_VERIFICATION.value):
            raise ValidationError({"status": [f"Cannot activate a pharmacy in {self.status} status"]})

        now = _utcnow()
        self.status = PharmacyStatus.ACTIVE.value
        self.suspension_reason = None
        self.suspended_at = None
        self.updated_at = now
        self.raise_(PharmacyReactivated(pharmacy_id=str(self.id), reactivated_at=now))

    def verify_cold_chain(self, verified_by: str) -> None:
        if not self.has_cold_chain_capability:
            raise ValidationError(
                {"has_cold_chain_capability": ["Pharmacy has not declared cold-chain storage capability"]}
            )

        now = _utcnow()
        self.cold_chain_verified = True
        self.cold_chain_verified_at = now
        self.updated_at = now
        self.raise_(ColdChainVerified(pharmacy_id=str(self.id), verified_by=verified_by, verified_at=now))

    # -------------------------------------------------------------------
    # Staff
    # -------------------------------------------------------------------
    def add_staff_member(
        self,
        name: str,
        role: str = StaffRole.PHARMACIST.value,
        user_id: str | None = None,
        can_accept_orders: bool = False,
        can_dispense: bool = False,
        can_manage_inventory: bool = False,
        registration_number: str | None = None,
        registration_expiry: datetime | None = None,
    ) -> PharmacyStaff:
        if can_accept_orders and role != StaffRole.PHARMACIST.value:
            raise ValidationError({"can_accept_orders": ["Only a pharmacist may accept orders"]})

        member = PharmacyStaff(
            user_id=user_id,
            name=name,
            role=role,
            can_accept_orders=can_accept_orders,
            can_dispense=can_dispense,
            can_manage_inventory=can_manage_inventory,
            is_active=True,
            registration_number=registration_number,
            registration_expiry=registration_expiry,
        )
        self.add_staff(member)

        now = _utcnow()
        self.updated_at = now
        self.raise_(
            PharmacyStaffAdded(
                pharmacy_id=str(self.id),
                staff_id=str(member.id),
                name=name,
                role=role,
                can_accept_orders=can_accept_orders,
                added_at=now,
            )
        )
        return member

    def find_staff(self, staff_id: str) -> PharmacyStaff | None:
        return next((s for s in (self.staff or []) if str(s.id) == str(staff_id)), None)

    def deactivate_staff_member(self, staff_id: str, reason: str) -> None:
        member = self.find_staff(staff_id)
        if member is None:
            raise ValidationError({"staff_id": ["Staff member not found in this pharmacy"]})
        if not member.is_active:
            return

        now = _utcnow()
        member.is_active = False
        member.deactivation_reason = reason
        self.updated_at = now
        self.raise_(
            PharmacyStaffDeactivated(
                pharmacy_id=str(self.id),
                staff_id=str(member.id),
                reason=reason,
                deactivated_at=now,
            )
        )

    def authorize(self, staff_id: str, permission: StaffPermission) -> PharmacyStaff:
        """Return the staff member if they may act with ``permission`` here."""
        member = self.find_staff(staff_id)
        if member is None:
            raise PermissionDeniedError("Staff member does not belong to this pharmacy", actor_id=staff_id)
        if not member.is_active:
            raise PermissionDeniedError("Staff member is inactive", actor_id=staff_id)
        if not member.has_permission(permission):
            raise PermissionDeniedError(
                f"Staff member lacks the {permission.value} permission",
                actor_id=staff_id,
            )
        return member

    def order_acceptors(self) -> list[PharmacyStaff]:
        """Active staff who get told about newly assigned orders."""
        return [s for s in (self.staff or []) if s.is_active and s.can_accept_orders]

    # -------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------
    def find_inventory(self, medication_name: str) -> InventoryEntry | None:
        key = medication_name.strip().lower()
        return next(
            (e for e in (self.inventory or []) if e.medication_name.strip().lower() == key),
            None,
        )

    def upsert_inventory(
        self,
        medication_name: str,
        is_in_stock: bool,
        quantity: int,
        updated_by: str,
        generic_name: str | None = None,
    ) -> InventoryEntry:
        """Create or update the stock record for one medication (matched case-insensitively)."""
        now = _utcnow()
        entry = self.find_inventory(medication_name)
        if entry is None:
            entry = InventoryEntry(
                medication_name=medication_name,
                generic_name=generic_name,
                is_in_stock=is_in_stock,
                quantity=quantity,
                last_updated_by=updated_by,
                last_updated_at=now,
            )
            self.add_inventory(entry)
        else:
            entry.is_in_stock = is_in_stock
            entry.quantity = quantity
            if generic_name:
                entry.generic_name = generic_name
            entry.last_updated_by = updated_by
            entry.last_updated_at = now

        self.updated_at = now
        self.raise_(
            InventoryUpdated(
                pharmacy_id=str(self.id),
                medication_name=entry.medication_name,
                is_in_stock=is_in_stock,
                quantity=quantity,
                updated_by=updated_by,
                updated_at=now,
            )
        )
        return entry

    def mark_out_of_stock(self, medication_names: list[str], updated_by: str) -> None:
        for name in medication_names:
            self.upsert_inventory(name, is_in_stock=False, quantity=0, updated_by=updated_by)
