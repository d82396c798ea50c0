"""Links maintenance tickets to listing maintenance mode."""

from datetime import datetime, timezone
from typing import Iterable, Optional

from src.models.listing import Listing
from src.models.maintenance import (
    MaintenanceListingStatus,
    MaintenanceModeConfig,
    MaintenanceTicket,
    TicketPriority,
    TicketStatus,
    UnitInMaintenance,
)
from src.repositories.base import UnitRepository
from src.services.listing_service import ListingService
from src.utils.logging import get_structured_logger
from src.utils.settings import ListingSettings

logger = get_structured_logger(__name__)

OFFLINE_PRIORITIES = frozenset({TicketPriority.HIGH, TicketPriority.URGENT})
START_STATUSES = frozenset({TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD})
END_STATUSES = frozenset({TicketStatus.COMPLETED, TicketStatus.CANCELLED})


class MaintenanceCoordinator:
    """Reacts to ticket status changes and reports maintenance state."""

    def __init__(
        self,
        listing_service: ListingService,
        unit_repository: UnitRepository,
        offline_keywords: Optional[Iterable[str]] = None,
    ):
        self.listing_service = listing_service
        self.units = unit_repository
        keywords = offline_keywords if offline_keywords is not None else ListingSettings.MAINTENANCE_OFFLINE_KEYWORDS
        self.offline_keywords = tuple(k.lower() for k in keywords)

    def requires_offline(self, ticket: MaintenanceTicket) -> bool:
        """HIGH/URGENT tickets, or tickets describing unit-offline work."""
        if ticket.priority in OFFLINE_PRIORITIES:
            return True
        text = f"{ticket.title}\n{ticket.description}".lower()
        return any(keyword in text for keyword in self.offline_keywords)

    async def handle_ticket_status_change(
        self,
        ticket: MaintenanceTicket,
        new_status: TicketStatus,
        actor_id: str,
    ) -> Optional[Listing]:
        """
        Apply a ticket transition to the unit's listing.

        Returns the listing when maintenance mode was started or ended,
        otherwise None.
        """
        new_status = TicketStatus(new_status)
        logger.info(
            "Maintenance ticket status changed",
            maintenance_request_id=ticket.id,
            unit_id=ticket.unit_id,
            ticket_status=new_status.value,
        )

        if new_status in START_STATUSES:
            return await self._evaluate_start(ticket, actor_id)
        if new_status in END_STATUSES:
            return await self._evaluate_end(ticket, new_status, actor_id)
        return None

    async def _evaluate_start(self, ticket: MaintenanceTicket, actor_id: str) -> Optional[Listing]:
        listing = await self.listing_service.get_listing_for_unit(ticket.unit_id)
        if listing is None:
            logger.debug("No listing to take offline", unit_id=ticket.unit_id)
            return None

        if not self.requires_offline(ticket):
            logger.debug("Ticket does not require unit offline", maintenance_request_id=ticket.id)
            return None

        config = MaintenanceModeConfig(
            unit_id=ticket.unit_id,
            start_date=datetime.now(timezone.utc),
            reason=f"Maintenance request: {ticket.title or ticket.id}",
            maintenance_request_id=ticket.id,
        )
        return await self.listing_service.start_maintenance_mode(config, actor_id)

    async def _evaluate_end(
        self,
        ticket: MaintenanceTicket,
        new_status: TicketStatus,
        actor_id: str,
    ) -> Optional[Listing]:
        status = await self.listing_service.maintenance_mode_status(ticket.unit_id)
        if not status.is_in_maintenance or status.maintenance_request_id != ticket.id:
            return None

        outcome = "completed" if new_status == TicketStatus.COMPLETED else "cancelled"
        return await self.listing_service.end_maintenance_mode(
            ticket.unit_id,
            actor_id,
            reason=f"Maintenance request {outcome}: {ticket.title or ticket.id}",
        )

    async def start_maintenance_manually(
        self,
        unit_id: str,
        reason: str,
        actor_id: str,
        estimated_end_date: Optional[datetime] = None,
        maintenance_request_id: Optional[str] = None,
    ) -> Listing:
        config = MaintenanceModeConfig(
            unit_id=unit_id,
            start_date=datetime.now(timezone.utc),
            reason=reason,
            estimated_end_date=estimated_end_date,
            maintenance_request_id=maintenance_request_id,
        )
        return await self.listing_service.start_maintenance_mode(config, actor_id)

    async def end_maintenance_manually(self, unit_id: str, actor_id: str, reason: Optional[str] = None) -> Listing:
        return await self.listing_service.end_maintenance_mode(
            unit_id,
            actor_id,
            reason=reason or "Maintenance completed manually",
        )

    async def get_maintenance_listing_status(self, unit_id: str) -> MaintenanceListingStatus:
        try:
            status = await self.listing_service.maintenance_mode_status(unit_id)
        except Exception as e:
            logger.error("Error getting maintenance listing status", exc_info=True, unit_id=unit_id, error=str(e))
            return MaintenanceListingStatus(is_in_maintenance=False)

        return MaintenanceListingStatus(
            is_in_maintenance=status.is_in_maintenance,
            maintenance_request_id=status.maintenance_request_id,
            can_restore=status.can_restore,
            estimated_end_date=status.estimated_end_date,
        )

    async def units_in_maintenance_mode(self, organization_id: str) -> list[UnitInMaintenance]:
        """Every listed unit of the organization currently in maintenance."""
        units = await self.units.list_units(organization_id)
        results = []
        for unit in units:
            status = await self.listing_service.maintenance_mode_status(unit.unit_id)
            if not status.is_in_maintenance:
                continue
            prop = await self.listing_service.get_property(unit.property_id)
            results.append(UnitInMaintenance(
                unit_id=unit.unit_id,
                unit_number=unit.unit_number,
                property_name=(prop.name if prop and prop.name else "Unknown Property"),
                maintenance_request_id=status.maintenance_request_id,
                start_date=status.start_date or datetime.now(timezone.utc),
                estimated_end_date=status.estimated_end_date,
                reason=status.reason or "Maintenance in progress",
            ))
        return results
