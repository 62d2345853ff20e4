#!/usr/bin/env python3
"""
Billboard Rental Core - Daily Availability Job
==============================================
Standalone script that re-derives every resource's BOOKED/AVAILABLE state
from the reservations active today.

Reservations that start or end at midnight change availability without any
request touching them; this sweep catches those transitions.

- Resources in MAINTENANCE are left alone
- Each resource is reconciled in its own locked transaction
- Exit code 0 when every resource was reconciled, 1 otherwise

Usage (cron, 00:05 UTC):
    python availability_job.py [--tenant TENANT_ID] [--date YYYY-MM-DD]
"""

import argparse
import sys
from typing import List, Optional

from exceptions import BookingError
from logging_config import get_logger, setup_logging
from services import build_coordinator
from settings import Settings


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile resource availability with today's reservations.")
    parser.add_argument("--tenant", default=None, help="Only reconcile this tenant (default: all)")
    parser.add_argument("--date", default=None, help="Reference day, ISO-8601 (default: today UTC)")
    return parser.parse_args(argv)


def run_reconciliation(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> bool:
    """Main entry point. Returns True when the sweep completed."""
    args = parse_args(argv)
    settings = settings or Settings.from_env()
    setup_logging(settings.app_env, settings.log_dir)
    logger = get_logger(__name__)

    logger.info("=" * 50)
    logger.info("STARTING AVAILABILITY RECONCILIATION")
    logger.info(f"Backend: {settings.booking_backend} | Tenant: {args.tenant or 'all'}")
    logger.info("=" * 50)

    coordinator = build_coordinator(settings)
    try:
        report = coordinator.reconcile_availability(args.tenant, args.date)
    except BookingError as e:
        logger.error(f"Reconciliation aborted: {e.code} - {e.message}")
        return False

    logger.info("=" * 50)
    logger.info(
        f"RECONCILIATION DONE for {report.reference_date}: {report.checked} checked, "
        f"{report.marked_booked} marked booked, {report.marked_available} released, "
        f"{report.skipped_maintenance} in maintenance"
    )
    logger.info("=" * 50)

    if report.failed:
        logger.error(f"{len(report.failed)} resources could not be reconciled: {', '.join(report.failed)}")
        return False
    return True


# ============================================
# ENTRY POINT
# ============================================

if __name__ == "__main__":
    try:
        sys.exit(0 if run_reconciliation() else 1)
    except KeyboardInterrupt:
        get_logger(__name__).warning("Reconciliation interrupted by user")
        sys.exit(1)
