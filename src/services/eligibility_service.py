"""Decides whether a unit may accept tenant applications."""

import asyncio

from src.models.eligibility import ApplicationEligibility
from src.models.listing import Listing, ListingStatus
from src.repositories.base import ListingRepository, UnitRepository
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

STATUS_REASONS = {
    ListingStatus.PRIVATE: "Unit is not currently listed on the marketplace",
    ListingStatus.SUSPENDED: "Unit listing is temporarily suspended",
    ListingStatus.MAINTENANCE: "Unit is temporarily unavailable for maintenance",
    ListingStatus.EXPIRED: "Unit listing has expired",
    ListingStatus.PENDING: "Unit listing is pending activation",
}


def _ineligible_reason(listing: Listing) -> str:
    if listing.status == ListingStatus.COMING_SOON:
        available_on = listing.availability_date.date().isoformat()
        return f'Unit is listed as "Coming Soon" and will be available for applications on {available_on}'
    return STATUS_REASONS.get(
        listing.status,
        f"Unit listing status ({listing.status.value}) does not allow applications",
    )


class EligibilityService:
    """Read-only gate over units, leases and listings."""

    def __init__(self, unit_repository: UnitRepository, listing_repository: ListingRepository):
        self.units = unit_repository
        self.listings = listing_repository

    async def check_application_eligibility(self, unit_id: str) -> ApplicationEligibility:
        try:
            return await self._evaluate(unit_id)
        except Exception as e:
            logger.error(
                "Error checking unit eligibility",
                exc_info=True,
                unit_id=unit_id,
                error=str(e),
            )
            return ApplicationEligibility(
                unit_id=unit_id,
                is_eligible=False,
                reason="Error checking unit eligibility",
            )

    async def _evaluate(self, unit_id: str) -> ApplicationEligibility:
        unit = await self.units.get_unit(unit_id)
        if unit is None:
            return ApplicationEligibility(unit_id=unit_id, is_eligible=False, reason="Unit not found")

        lease = await self.units.get_active_lease(unit_id)
        if lease is not None:
            return ApplicationEligibility(
                unit_id=unit_id,
                is_eligible=False,
                reason="Unit has an active lease and is not available for applications",
            )

        listing = await self.listings.get_by_unit(unit_id)
        if listing is None:
            return ApplicationEligibility(
                unit_id=unit_id,
                is_eligible=False,
                listing_status=ListingStatus.PRIVATE,
                reason=STATUS_REASONS[ListingStatus.PRIVATE],
            )

        if listing.status == ListingStatus.ACTIVE:
            return ApplicationEligibility(
                unit_id=unit_id,
                is_eligible=True,
                listing_status=ListingStatus.ACTIVE,
            )

        return ApplicationEligibility(
            unit_id=unit_id,
            is_eligible=False,
            listing_status=listing.status,
            reason=_ineligible_reason(listing),
        )

    async def check_multiple_units_eligibility(self, unit_ids: list[str]) -> list[ApplicationEligibility]:
        """Evaluate each unit independently; results follow input order."""
        return list(await asyncio.gather(*(self.check_application_eligibility(u) for u in unit_ids)))
