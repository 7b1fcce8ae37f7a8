"""Pharmacy bounded context: Prescription Order Fulfillment.

Selects a capable pharmacy for each prescription, drives the resulting order
through the regulated fulfillment workflow (pharmacy staff, prescribing
doctor, courier, patient), watches service-level timers, and handles the
exception paths: rejection and reassignment, stock issues and substitutions,
damaged or cold-chain-compromised deliveries, returns, and recurring refills.

Uses CQRS (not event sourcing): orders move through a fixed transition table
and every mutation raises a domain event consumed by the messaging handlers.
"""

from protean.domain import Domain

from pharmacy.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

pharmacy = Domain(name="pharmacy")
