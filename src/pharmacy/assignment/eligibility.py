"""Hard constraints a pharmacy must meet before it may receive an order."""

from datetime import datetime

from pharmacy.pharmacy.pharmacy import PharmacyStatus
from pharmacy.utils.clock import as_utc

COLD_CHAIN_MEDICATIONS = (
    "semaglutide",
    "liraglutide",
    "dulaglutide",
    "insulin",
    "tirzepatide",
)


def requires_cold_chain(medications: list[dict]) -> bool:
    """True if any medication's name or generic name mentions a refrigerated drug."""
    for med in medications or []:
        names = (med.get("name"), med.get("generic_name"), med.get("genericName"))
        for name in names:
            if name and any(term in name.lower() for term in COLD_CHAIN_MEDICATIONS):
                return True
    return False


def is_eligible(pharmacy, needs_cold_chain: bool, now: datetime) -> bool:
    if pharmacy.status != PharmacyStatus.ACTIVE.value:
        return False
    if (pharmacy.current_queue_size or 0) >= (pharmacy.daily_order_limit or 0):
        return False
    expiry = as_utc(pharmacy.drug_license_expiry)
    if expiry is not None and expiry <= as_utc(now):
        return False
    # Declared capability is not enough; storage must have been verified
    if needs_cold_chain and not pharmacy.cold_chain_verified:
        return False
    return True
