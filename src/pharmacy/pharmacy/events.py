"""Pharmacy domain events: registry, capacity, credential and inventory changes."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from pharmacy.domain import pharmacy


@pharmacy.event(part_of="Pharmacy")
class PharmacyRegistered:
    """A pharmacy joined the fulfillment network."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    name = String(required=True)
    city = String(required=True)
    pincode = String(required=True)
    status = String(required=True)
    daily_order_limit = Integer(required=True)
    registered_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class PharmacyStaffAdded:
    """A staff member was added to a pharmacy."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    name = String(required=True)
    role = String(required=True)
    can_accept_orders = Boolean(required=True)
    added_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class PharmacyStaffDeactivated:
    """A staff member lost the ability to act for the pharmacy."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    staff_id = Identifier(required=True)
    reason = String(required=True)
    deactivated_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class ColdChainVerified:
    """The pharmacy's refrigerated storage passed verification."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    verified_by = String(required=True)
    verified_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class PharmacySuspended:
    """The pharmacy was taken out of the assignment pool."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    name = String(required=True)
    reason = String(required=True)
    suspended_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class PharmacyReactivated:
    """A suspended or pending pharmacy returned to the assignment pool."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    reactivated_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class OrderSlotClaimed:
    """An assignment took one unit of the pharmacy's daily capacity."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    queue_size = Integer(required=True)
    daily_order_limit = Integer(required=True)
    claimed_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class OrderSlotReleased:
    """An order left the pharmacy's queue (delivered, cancelled or reassigned)."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    queue_size = Integer(required=True)
    released_at = DateTime(required=True)


@pharmacy.event(part_of="Pharmacy")
class InventoryUpdated:
    """A medication's stock record changed."""

    __version__ = "v1"

    pharmacy_id = Identifier(required=True)
    medication_name = String(required=True)
    is_in_stock = Boolean(required=True)
    quantity = Integer(required=True)
    updated_by = String(required=True)
    updated_at = DateTime(required=True)
