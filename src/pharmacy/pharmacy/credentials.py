"""Credential expiry scan: command and handler.

Designed to be triggered daily by the scheduler. An expired drug license
suspends the pharmacy (which in turn moves its unaccepted orders elsewhere);
an expired pharmacist registration deactivates that pharmacist. Anything
expiring within the warning window only raises an operator alert.
"""

from datetime import timedelta

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime, Integer
from protean.utils.globals import current_domain

from pharmacy.domain import pharmacy
from pharmacy.errors import IllegalTransitionError
from pharmacy.messaging import get_operator_sink
from pharmacy.messaging.alerts import AlertType
from pharmacy.pharmacy.pharmacy import Pharmacy, StaffRole
from pharmacy.pharmacy.registry import DeactivatePharmacyStaff, SuspendPharmacy
from pharmacy.utils.clock import as_utc, utcnow

logger = structlog.get_logger(__name__)

LICENSE_EXPIRED_REASON = "Drug license expired, auto-suspended"
REGISTRATION_EXPIRED_REASON = "Pharmacist registration expired"


@pharmacy.command(part_of="Pharmacy")
class CheckExpiringCredentials:
    """Act on expired and soon-to-expire licenses and registrations."""

    warning_days = Integer(default=30, min_value=1)
    as_of = DateTime()  # Optional: defaults to now


@pharmacy.command_handler(part_of=Pharmacy)
class CredentialExpiryHandler:
    @handle(CheckExpiringCredentials)
    def check_expiring_credentials(self, command):
        as_of = as_utc(command.as_of) or utcnow()
        horizon = as_of + timedelta(days=command.warning_days or 30)
        sink = get_operator_sink()
        summary = {
            "suspended": 0,
            "license_warnings": 0,
            "staff_deactivated": 0,
            "registration_warnings": 0,
            "failed": 0,
        }

        pharmacies = current_domain.repository_for(Pharmacy).find_active()
        logger.info("Checking pharmacy credentials", pharmacy_count=len(pharmacies), horizon=horizon.isoformat())

        for ph in pharmacies:
            try:
                expiry = as_utc(ph.drug_license_expiry)
                if expiry is not None and expiry <= as_of:
                    current_domain.process(
                        SuspendPharmacy(pharmacy_id=str(ph.id), reason=LICENSE_EXPIRED_REASON),
                        asynchronous=False,
                    )
                    sink.alert(
                        AlertType.PHARMACY_LICENSE_EXPIRED,
                        "Pharmacy license expired",
                        f"{ph.name} was suspended because its drug license expired.",
                        {"pharmacy_id": str(ph.id), "expired_at": expiry.isoformat()},
                    )
                    summary["suspended"] += 1
                    continue

                if expiry is not None and expiry <= horizon:
                    sink.alert(
                        AlertType.PHARMACY_LICENSE_EXPIRING,
                        "Pharmacy license expiring",
                        f"The drug license of {ph.name} expires on {expiry:%Y-%m-%d}.",
                        {"pharmacy_id": str(ph.id), "expires_at": expiry.isoformat()},
                    )
                    summary["license_warnings"] += 1

                for member in ph.staff or []:
                    registration_expiry = as_utc(member.registration_expiry)
                    if not member.is_active or member.role != StaffRole.PHARMACIST.value or registration_expiry is None:
                        continue
                    data = {"pharmacy_id": str(ph.id), "staff_id": str(member.id)}
                    if registration_expiry <= as_of:
                        current_domain.process(
                            DeactivatePharmacyStaff(
                                pharmacy_id=str(ph.id),
                                staff_id=str(member.id),
                                reason=REGISTRATION_EXPIRED_REASON,
                            ),
                            asynchronous=False,
                        )
                        sink.alert(
                            AlertType.PHARMACIST_REGISTRATION_EXPIRED,
                            "Pharmacist registration expired",
                            f"{member.name} at {ph.name} was deactivated because their registration expired.",
                            data,
                        )
                        summary["staff_deactivated"] += 1
                    elif registration_expiry <= horizon:
                        sink.alert(
                            AlertType.PHARMACIST_REGISTRATION_EXPIRING,
                            "Pharmacist registration expiring",
                            f"The registration of {member.name} at {ph.name} expires on {registration_expiry:%Y-%m-%d}.",
                            data,
                        )
                        summary["registration_warnings"] += 1
            except (ValidationError, InvalidOperationError, IllegalTransitionError) as exc:
                summary["failed"] += 1
                logger.warning("Failed to process pharmacy credentials", pharmacy_id=str(ph.id), error=str(exc))
            except Exception as exc:
                summary["failed"] += 1
                logger.error("Unexpected error while checking credentials", pharmacy_id=str(ph.id), error=str(exc))

        logger.info("Credential check complete", **summary)
        return summary
