"""Fake prescription lookup: in-memory prescriptions for testing and development."""

from copy import deepcopy
from datetime import UTC, datetime, timedelta

from pharmacy.prescription.port import PrescriptionLookupPort


class FakePrescriptionLookup(PrescriptionLookupPort):
    def __init__(self):
        self.prescriptions: dict[str, dict] = {}
        self.covered_patients: set[str] = set()

    def add_prescription(
        self,
        prescription_id: str,
        patient_id: str,
        doctor_id: str,
        medications: list[dict],
        delivery_city: str,
        delivery_pincode: str,
        delivery_address: str = "1 Main Street",
        consultation_id: str | None = None,
        valid_until: datetime | None = None,
    ) -> dict:
        """Register a prescription. ``valid_until`` defaults to 30 days from now."""
        record = {
            "prescription_id": prescription_id,
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "consultation_id": consultation_id or f"consult-{prescription_id}",
            "medications": list(medications),
            "delivery_address": delivery_address,
            "delivery_city": delivery_city,
            "delivery_pincode": delivery_pincode,
            "valid_until": valid_until if valid_until is not None else datetime.now(UTC) + timedelta(days=30),
        }
        self.prescriptions[prescription_id] = record
        return record

    def expire(self, prescription_id: str, at: datetime | None = None) -> None:
        self.prescriptions[prescription_id]["valid_until"] = at or datetime.now(UTC) - timedelta(days=1)

    def grant_coverage(self, patient_id: str) -> None:
        self.covered_patients.add(patient_id)

    def revoke_coverage(self, patient_id: str) -> None:
        self.covered_patients.discard(patient_id)

    def lookup(self, prescription_id: str) -> dict | None:
        record = self.prescriptions.get(prescription_id)
        return deepcopy(record) if record else None

    def has_active_coverage(self, patient_id: str, consultation_id: str | None = None) -> bool:
        return patient_id in self.covered_patients

    def reset(self):
        self.prescriptions.clear()
        self.covered_patients.clear()
