"""Periodic job runner for the Pharmacy domain.

Runs the fulfillment scans on fixed intervals:
- sla:         ScanSlaBreaches         (SLA_SCAN_INTERVAL_SECONDS, default 600)
- refills:     ProcessDueRefills       (REFILL_SCAN_INTERVAL_SECONDS, default 86400)
- credentials: CheckExpiringCredentials (CREDENTIAL_SCAN_INTERVAL_SECONDS, default 86400)
- outbox:      DeliverPendingNotifications (OUTBOX_FLUSH_INTERVAL_SECONDS, default 30)

Usage:
    python src/scheduler.py                  # Run every job forever
    python src/scheduler.py --job sla        # Run a single job forever
    python src/scheduler.py --job sla --once # Run a single job once and exit
"""

import argparse
import asyncio
import os

import structlog

logger = structlog.get_logger(__name__)

JOBS = ("sla", "refills", "credentials", "outbox")

_DEFAULT_INTERVALS = {
    "sla": 600,
    "refills": 86400,
    "credentials": 86400,
    "outbox": 30,
}

_INTERVAL_ENV = {
    "sla": "SLA_SCAN_INTERVAL_SECONDS",
    "refills": "REFILL_SCAN_INTERVAL_SECONDS",
    "credentials": "CREDENTIAL_SCAN_INTERVAL_SECONDS",
    "outbox": "OUTBOX_FLUSH_INTERVAL_SECONDS",
}


def _get_domain():
    from pharmacy.domain import pharmacy

    pharmacy.init()
    return pharmacy


def interval_for(job: str) -> int:
    return int(os.environ.get(_INTERVAL_ENV[job], _DEFAULT_INTERVALS[job]))


def run_job(domain, job: str):
    """Run one job inside the domain context and return its result."""
    with domain.domain_context():
        if job == "sla":
            from pharmacy.order.sla_monitor import ScanSlaBreaches

            return domain.process(ScanSlaBreaches(), asynchronous=False)
        if job == "refills":
            from pharmacy.refill.processing import ProcessDueRefills

            return domain.process(ProcessDueRefills(), asynchronous=False)
        if job == "credentials":
            from pharmacy.pharmacy.credentials import CheckExpiringCredentials

            return domain.process(CheckExpiringCredentials(), asynchronous=False)
        if job == "outbox":
            from pharmacy.messaging.delivery import DeliverPendingNotifications

            return domain.process(DeliverPendingNotifications(), asynchronous=False)
    raise ValueError(f"Unknown job: {job}")


async def _loop(domain, job: str):
    interval = interval_for(job)
    logger.info("Scheduling job", job=job, interval_seconds=interval)
    while True:
        try:
            result = await asyncio.to_thread(run_job, domain, job)
            logger.info("Job finished", job=job, result=result)
        except Exception as exc:
            logger.error("Job failed", job=job, error=str(exc))
        await asyncio.sleep(interval)


async def run(jobs):
    domain = _get_domain()
    await asyncio.gather(*(_loop(domain, job) for job in jobs))


def main():
    parser = argparse.ArgumentParser(description="Pharmacy fulfillment scheduler")
    parser.add_argument("--job", choices=JOBS, help="Run a single job (default: run all)")
    parser.add_argument("--once", action="store_true", help="Run the selected job(s) once and exit")
    args = parser.parse_args()

    from pharmacy.utils.logging import configure_logging

    configure_logging()
    jobs = [args.job] if args.job else list(JOBS)

    if args.once:
        domain = _get_domain()
        for job in jobs:
            logger.info("Job finished", job=job, result=run_job(domain, job))
        return

    asyncio.run(run(jobs))


if __name__ == "__main__":
    main()
