"""Read-side queries over orders: per-order SLA status and per-pharmacy performance."""

from datetime import datetime

from protean.utils.globals import current_domain
from pydantic import BaseModel, Field

from pharmacy.order.order import PharmacyOrder
from pharmacy.order.sla_policy import remaining_hours
from pharmacy.order.states import OrderStatus
from pharmacy.utils.clock import hours_between, utcnow


class SlaBreachView(BaseModel):
    breach_type: str
    detected_at: datetime
    elapsed_hours: float
    limit_hours: float


class SlaStatus(BaseModel):
    order_id: str
    status: str
    requires_cold_chain: bool
    breaches: list[SlaBreachView] = Field(default_factory=list)
    remaining_hours: dict[str, float] = Field(default_factory=dict)


class PerformanceReport(BaseModel):
    pharmacy_id: str
    period_start: datetime
    period_end: datetime
    total_orders: int = 0
    avg_acceptance_hours: float = 0.0
    avg_preparation_hours: float = 0.0
    rejection_rate: float = 0.0
    sla_breach_count: int = 0


def get_sla_status(order_id: str, as_of: datetime | None = None) -> SlaStatus:
    """Breaches on record plus time left on each running clock."""
    order = current_domain.repository_for(PharmacyOrder).get(order_id)
    now = as_of or utcnow()
    return SlaStatus(
        order_id=str(order.id),
        status=order.status,
        requires_cold_chain=bool(order.requires_cold_chain),
        breaches=[
            SlaBreachView(
                breach_type=b.breach_type,
                detected_at=b.detected_at,
                elapsed_hours=b.elapsed_hours,
                limit_hours=b.limit_hours,
            )
            for b in (order.sla_breaches or [])
        ],
        remaining_hours=remaining_hours(order, now),
    )


def _mean_hours(pairs) -> float:
    durations = [hours_between(start, end) for start, end in pairs if start and end]
    return round(sum(durations) / len(durations), 2) if durations else 0.0


def get_pharmacy_performance_report(pharmacy_id: str, start: datetime, end: datetime) -> PerformanceReport:
    """Aggregate metrics over orders created in [start, end] that the pharmacy handled or declined."""
    orders = current_domain.repository_for(PharmacyOrder).find_handled_by(pharmacy_id, start, end)
    report = PerformanceReport(pharmacy_id=pharmacy_id, period_start=start, period_end=end)
    if not orders:
        return report

    own = [o for o in orders if str(o.pharmacy_id) == str(pharmacy_id)]
    rejected = [
        o
        for o in orders
        if str(pharmacy_id) in o.rejected_by_pharmacies
        or (o.status == OrderStatus.PHARMACY_REJECTED.value and str(o.pharmacy_id) == str(pharmacy_id))
    ]

    report.total_orders = len(orders)
    report.avg_acceptance_hours = _mean_hours((o.assigned_at, o.accepted_at) for o in own)
    report.avg_preparation_hours = _mean_hours((o.accepted_at, o.ready_for_pickup_at) for o in own)
    report.rejection_rate = round(len(rejected) / len(orders), 4)
    report.sla_breach_count = sum(len(o.sla_breaches or []) for o in own)
    return report
