"""Prescription lookup adapter registry."""

import os

_lookup_instance = None


def get_prescription_lookup():
    """Return the configured prescription lookup adapter (singleton).

    Uses FakePrescriptionLookup by default. In production, configure via
    PRESCRIPTION_ADAPTER environment variable.
    """
    global _lookup_instance
    if _lookup_instance is None:
        adapter = os.environ.get("PRESCRIPTION_ADAPTER", "fake")
        if adapter == "fake":
            from pharmacy.prescription.fake_lookup import FakePrescriptionLookup

            _lookup_instance = FakePrescriptionLookup()
        else:
            raise ValueError(f"Unknown prescription adapter: {adapter}")
    return _lookup_instance


def reset_prescription_lookup():
    """Reset the lookup singleton (useful for testing)."""
    global _lookup_instance
    _lookup_instance = None
