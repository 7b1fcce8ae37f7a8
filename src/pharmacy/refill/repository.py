"""Repository for the RefillSubscription aggregate."""

from datetime import datetime

from pharmacy.domain import pharmacy
from pharmacy.refill.refill import RefillSubscription
from pharmacy.utils.clock import as_utc


@pharmacy.repository(part_of=RefillSubscription)
class RefillSubscriptionRepository:
    def find_active(self) -> list[RefillSubscription]:
        return self._dao.query.filter(is_active=True).limit(None).all().items

    def find_due(self, cutoff: datetime) -> list[RefillSubscription]:
        """Active subscriptions whose next refill falls on or before ``cutoff``."""
        cutoff = as_utc(cutoff)
        return [s for s in self.find_active() if as_utc(s.next_due_date) <= cutoff]
