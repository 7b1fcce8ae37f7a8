"""Prescription lookup port: read-only access to prescriptions and coverage.

Prescriptions are written by the consultation side of the platform; this
context only reads them when it needs to place an order.
"""

from abc import ABC, abstractmethod


class PrescriptionLookupPort(ABC):
    """Abstract interface for prescription lookup adapters."""

    @abstractmethod
    def lookup(self, prescription_id: str) -> dict | None:
        """Fetch a prescription.

        Returns:
            None when unknown, otherwise a dict with keys: prescription_id,
            medications (list of {name, generic_name, dosage, quantity}),
            valid_until (datetime or None), consultation_id, patient_id,
            doctor_id, delivery_address, delivery_city, delivery_pincode
        """
        ...

    @abstractmethod
    def has_active_coverage(self, patient_id: str, consultation_id: str | None = None) -> bool:
        """Whether the patient's subscription covers an order right now."""
        ...
