"""Preference order among eligible pharmacies: shortest queue, then same pincode."""


def rank(candidates: list, delivery_pincode: str | None) -> list:
    """Best candidate first. The sort is stable, so full ties keep input order."""
    return sorted(
        candidates,
        key=lambda p: (p.current_queue_size or 0, 0 if p.pincode == delivery_pincode else 1),
    )
