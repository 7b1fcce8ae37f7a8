"""Pre-order coverage check: does the patient's subscription pay for this order?"""

from pydantic import BaseModel

from pharmacy.prescription import get_prescription_lookup

NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"


class CoverageResult(BaseModel):
    valid: bool
    reason: str | None = None


def check_order_coverage(patient_id: str, consultation_id: str | None = None) -> CoverageResult:
    if get_prescription_lookup().has_active_coverage(patient_id, consultation_id):
        return CoverageResult(valid=True)
    return CoverageResult(valid=False, reason=NO_ACTIVE_SUBSCRIPTION)
