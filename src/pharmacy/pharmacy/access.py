"""Staff authorization against the pharmacy an order is assigned to."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from pharmacy.errors import PermissionDeniedError
from pharmacy.pharmacy.pharmacy import Pharmacy, PharmacyStaff, StaffPermission


def authorize_staff(pharmacy_id: str | None, staff_id: str, permission: StaffPermission) -> tuple[Pharmacy, PharmacyStaff]:
    """Load the pharmacy and check that ``staff_id`` may act for it.

    Unknown staff raise ObjectNotFoundError; staff employed by a different
    pharmacy, inactive staff and staff without the permission raise
    PermissionDeniedError.
    """
    if not pharmacy_id:
        raise PermissionDeniedError("Order has no assigned pharmacy", actor_id=staff_id)

    repo = current_domain.repository_for(Pharmacy)
    ph = repo.get(pharmacy_id)
    if ph.find_staff(staff_id) is None:
        if repo.find_by_staff_member(staff_id) is None:
            raise ObjectNotFoundError({"_entity": [f"Staff member {staff_id} does not exist"]})
        raise PermissionDeniedError("Staff member belongs to a different pharmacy", actor_id=staff_id)

    return ph, ph.authorize(staff_id, permission)
