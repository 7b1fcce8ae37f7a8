"""Service-level limits for each phase of an order, and the clock arithmetic on them.

Pure functions over an order's status and timestamps so that the periodic
scan, the per-order status query and the tests all share one definition.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pharmacy.order.states import IN_FLIGHT_STATUSES, OrderStatus
from pharmacy.utils.clock import hours_between

ACCEPTANCE_SLA_HOURS = 4
PREPARATION_SLA_HOURS = 4
DELIVERY_SLA_HOURS = 6
COLD_CHAIN_DELIVERY_SLA_HOURS = 2
OVERALL_SLA_HOURS = 24
OVERALL_MAX_SLA_HOURS = 48


class SlaBreachType(Enum):
    ACCEPTANCE = "ACCEPTANCE"
    PREPARATION = "PREPARATION"
    DELIVERY = "DELIVERY"
    COLD_CHAIN = "COLD_CHAIN"
    OVERALL = "OVERALL"
    OVERALL_MAX = "OVERALL_MAX"


@dataclass(frozen=True)
class SlaRule:
    breach_type: SlaBreachType
    statuses: frozenset
    clock_field: str
    limit_hours: float
    cold_chain_only: bool = False


SLA_RULES: tuple[SlaRule, ...] = (
    SlaRule(SlaBreachType.ACCEPTANCE, frozenset({OrderStatus.ASSIGNED}), "assigned_at", ACCEPTANCE_SLA_HOURS),
    SlaRule(
        SlaBreachType.PREPARATION,
        frozenset({OrderStatus.PHARMACY_ACCEPTED, OrderStatus.PREPARING}),
        "accepted_at",
        PREPARATION_SLA_HOURS,
    ),
    SlaRule(SlaBreachType.DELIVERY, frozenset({OrderStatus.OUT_FOR_DELIVERY}), "dispatched_at", DELIVERY_SLA_HOURS),
    SlaRule(
        SlaBreachType.COLD_CHAIN,
        frozenset({OrderStatus.OUT_FOR_DELIVERY}),
        "dispatched_at",
        COLD_CHAIN_DELIVERY_SLA_HOURS,
        cold_chain_only=True,
    ),
    SlaRule(SlaBreachType.OVERALL, IN_FLIGHT_STATUSES, "created_at", OVERALL_SLA_HOURS),
    SlaRule(SlaBreachType.OVERALL_MAX, IN_FLIGHT_STATUSES, "created_at", OVERALL_MAX_SLA_HOURS),
)


@dataclass(frozen=True)
class BreachCandidate:
    breach_type: SlaBreachType
    elapsed_hours: float
    limit_hours: float


def _applicable_rules(order):
    status = OrderStatus(order.status)
    for rule in SLA_RULES:
        if status not in rule.statuses:
            continue
        if rule.cold_chain_only and not order.requires_cold_chain:
            continue
        if getattr(order, rule.clock_field) is None:
            continue
        yield rule


def detect_breaches(order, now: datetime) -> list[BreachCandidate]:
    """Phases of ``order`` whose clock ran strictly past the limit at ``now``."""
    breaches = []
    for rule in _applicable_rules(order):
        elapsed = hours_between(getattr(order, rule.clock_field), now)
        if elapsed > rule.limit_hours:
            breaches.append(BreachCandidate(rule.breach_type, round(elapsed, 2), float(rule.limit_hours)))
    return breaches


def remaining_hours(order, now: datetime) -> dict[str, float]:
    """Hours left on each running clock, floored at zero."""
    remaining = {}
    for rule in _applicable_rules(order):
        if rule.breach_type == SlaBreachType.OVERALL_MAX:
            continue
        elapsed = hours_between(getattr(order, rule.clock_field), now)
        remaining[rule.breach_type.value] = round(max(0.0, rule.limit_hours - elapsed), 2)
    return remaining
