"""Repository for the Pharmacy aggregate."""

from pharmacy.domain import pharmacy
from pharmacy.pharmacy.pharmacy import Pharmacy, PharmacyStatus


@pharmacy.repository(part_of=Pharmacy)
class PharmacyRepository:
    def _all(self, **filters) -> list[Pharmacy]:
        return self._dao.query.filter(**filters).limit(None).all().items

    def find_by_status(self, status: PharmacyStatus) -> list[Pharmacy]:
        return self._all(status=status.value)

    def find_active(self) -> list[Pharmacy]:
        return self.find_by_status(PharmacyStatus.ACTIVE)

    def find_active_in_city(self, city: str) -> list[Pharmacy]:
        """Active pharmacies serving ``city`` (compared case-insensitively)."""
        key = (city or "").strip().lower()
        return [p for p in self.find_active() if (p.city or "").strip().lower() == key]

    def find_by_staff_member(self, staff_id: str) -> Pharmacy | None:
        """The pharmacy employing ``staff_id``, in any status."""
        for ph in self._all():
            if ph.find_staff(staff_id) is not None:
                return ph
        return None
