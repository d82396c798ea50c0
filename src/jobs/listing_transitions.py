"""
Time-based listing transitions job.

Activates COMING_SOON listings whose availability date has passed and
expires listings past their expiration date, then logs the ACTIVE
listings that will expire soon. Intended to be run by a scheduler
(cron, Vercel cron or similar) as ``listing-transitions``.
"""

import argparse
import asyncio
from typing import Optional

from src.models.listing import TransitionReport
from src.repositories.supabase_repository import (
    SupabaseAuditRepository,
    SupabaseListingRepository,
    SupabaseUnitRepository,
)
from src.services.audit_service import AuditService
from src.services.listing_service import ListingService
from src.services.supabase_client import close_supabase_client
from src.utils.errors import ListingError
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

MAX_LOGGED_ERRORS = 10


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="listing-transitions", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--days-ahead", type=int, default=7, help="Expiry warning horizon in days")
    parser.add_argument("--log-level", help="Override LOG_LEVEL for this run")
    return parser


def build_listing_service() -> ListingService:
    """Listing service backed by the Supabase repositories."""
    return ListingService(
        SupabaseUnitRepository(),
        SupabaseListingRepository(),
        AuditService(SupabaseAuditRepository()),
    )


async def run_transitions(listing_service: ListingService, days_ahead: int = 7) -> TransitionReport:
    """Process due transitions once and log what is about to expire."""
    with correlation_context():
        report = await listing_service.process_time_based_transitions()
        for message in report.errors[:MAX_LOGGED_ERRORS]:
            logger.warning("Listing transition failed", error=message)

        expiring = await listing_service.get_expiring_soon_listings(days_ahead)
        if expiring:
            logger.info(
                "Listings expiring soon",
                days_ahead=days_ahead,
                listing_count=len(expiring),
                listing_ids=[listing.listing_id for listing in expiring],
            )
    return report


async def _run(days_ahead: int) -> TransitionReport:
    try:
        return await run_transitions(build_listing_service(), days_ahead)
    finally:
        await close_supabase_client()


def main(argv: Optional[list[str]] = None) -> int:
    """Console entry point; returns the process exit code."""
    args = create_argument_parser().parse_args(argv)
    LoggingConfig.setup_logging(args.log_level)

    try:
        asyncio.run(_run(args.days_ahead))
    except ListingError as e:
        logger.error(
            "Time-based listing transitions failed",
            error_type=e.type.value,
            code=e.code,
            error=e.message,
        )
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
