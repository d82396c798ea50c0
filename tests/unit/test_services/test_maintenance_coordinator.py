"""Tests for ticket-driven maintenance mode."""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from src.models.audit import AuditAction
from src.models.listing import ListingStatus
from src.models.maintenance import TicketPriority, TicketStatus
from src.services.maintenance_coordinator import MaintenanceCoordinator
from tests.utils.factories import create_listing_payload, create_maintenance_ticket


ACTOR = "manager-1"


@pytest_asyncio.fixture
async def listed_units(listing_service, units):
    """unit-1 and unit-2 listed ACTIVE, unit-3 unlisted."""
    for unit_id in ("unit-1", "unit-2"):
        await listing_service.create_listing(unit_id, create_listing_payload(), ACTOR)
    return units


@pytest.mark.unit
@pytest.mark.parametrize("overrides,expected", [
    ({}, False),
    ({"priority": TicketPriority.HIGH}, True),
    ({"priority": TicketPriority.URGENT}, True),
    ({"title": "Kitchen RENOVATION"}, True),
    ({"description": "Possible mold behind the sink"}, True),
    ({"priority": TicketPriority.MEDIUM, "title": "Door squeaks"}, False),
])
def test_requires_offline(maintenance_coordinator, overrides, expected):
    ticket = create_maintenance_ticket("unit-1", **overrides)

    assert maintenance_coordinator.requires_offline(ticket) is expected


@pytest.mark.unit
def test_custom_offline_keywords(listing_service, unit_repository):
    coordinator = MaintenanceCoordinator(listing_service, unit_repository, offline_keywords=["Chirping"])

    assert coordinator.requires_offline(create_maintenance_ticket("unit-1")) is True


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("ticket_status", [TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD])
async def test_ticket_start_enters_maintenance(maintenance_coordinator, store, listed_units, ticket_status):
    ticket = create_maintenance_ticket("unit-1", priority=TicketPriority.URGENT, title="Burst pipe")

    listing = await maintenance_coordinator.handle_ticket_status_change(ticket, ticket_status, ACTOR)

    assert listing.status == ListingStatus.MAINTENANCE
    entry = store.audit_entries[-1]
    assert entry.action == AuditAction.MAINTENANCE_STARTED
    assert entry.reason == "Maintenance request: Burst pipe"
    assert entry.changes["maintenance_request_id"] == ticket.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_low_impact_ticket_leaves_listing(maintenance_coordinator, store, listed_units):
    ticket = create_maintenance_ticket("unit-1")

    result = await maintenance_coordinator.handle_ticket_status_change(ticket, TicketStatus.IN_PROGRESS, ACTOR)

    assert result is None
    listing_id = store.units["unit-1"].listing_id
    assert store.listings[listing_id].status == ListingStatus.ACTIVE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ticket_for_unlisted_unit_is_ignored(maintenance_coordinator, store, listed_units):
    ticket = create_maintenance_ticket("unit-3", priority=TicketPriority.HIGH)

    result = await maintenance_coordinator.handle_ticket_status_change(ticket, TicketStatus.IN_PROGRESS, ACTOR)

    assert result is None
    assert all(e.unit_id != "unit-3" for e in store.audit_entries)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_open_status_is_ignored(maintenance_coordinator, listed_units):
    ticket = create_maintenance_ticket("unit-1", priority=TicketPriority.HIGH)

    assert await maintenance_coordinator.handle_ticket_status_change(ticket, TicketStatus.OPEN, ACTOR) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ticket_completion_restores_prior_status(maintenance_coordinator, listing_service, store, listed_units):
    """Test a SUSPENDED listing comes back SUSPENDED, not ACTIVE."""
    listing = await listing_service.get_listing_for_unit("unit-1")
    await listing_service.update_listing_status(listing.listing_id, ListingStatus.SUSPENDED, ACTOR)
    ticket = create_maintenance_ticket("unit-1", priority=TicketPriority.HIGH, title="Water heater")

    await maintenance_coordinator.handle_ticket_status_change(ticket, TicketStatus.IN_PROGRESS, ACTOR)
    restored = await maintenance_coordinator.handle_ticket_status_change(ticket, TicketStatus.COMPLETED, ACTOR)

    assert restored.status == ListingStatus.SUSPENDED
    entry = store.audit_entries[-1]
    assert entry.action == AuditAction.MAINTENANCE_ENDED
    assert entry.reason == "Maintenance request completed: Water heater"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ticket_cancellation_restores(maintenance_coordinator, store, listed_units):
    ticket = create_maintenance_ticket("unit-1", priority=TicketPriority.HIGH)

    await maintenance_coordinator.handle_ticket_status_change(ticket, TicketStatus.ON_HOLD, ACTOR)
    restored = await maintenance_coordinator.handle_ticket_status_change(ticket, TicketStatus.CANCELLED, ACTOR)

    assert restored.status == ListingStatus.ACTIVE
    assert store.audit_entries[-1].reason.startswith("Maintenance request cancelled")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_completion_of_other_ticket_does_not_end_maintenance(maintenance_coordinator, store, listed_units):
    """Test only the ticket that started maintenance can end it."""
    started_by = create_maintenance_ticket("unit-1", priority=TicketPriority.HIGH)
    unrelated = create_maintenance_ticket("unit-1", priority=TicketPriority.HIGH)

    await maintenance_coordinator.handle_ticket_status_change(started_by, TicketStatus.IN_PROGRESS, ACTOR)
    result = await maintenance_coordinator.handle_ticket_status_change(unrelated, TicketStatus.COMPLETED, ACTOR)

    assert result is None
    listing_id = store.units["unit-1"].listing_id
    assert store.listings[listing_id].status == ListingStatus.MAINTENANCE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_manual_maintenance_round_trip(maintenance_coordinator, store, listed_units):
    end = datetime.now(timezone.utc) + timedelta(days=2)

    started = await maintenance_coordinator.start_maintenance_manually(
        "unit-2", "Repainting hallway", ACTOR, estimated_end_date=end
    )
    ended = await maintenance_coordinator.end_maintenance_manually("unit-2", ACTOR)

    assert started.status == ListingStatus.MAINTENANCE
    assert ended.status == ListingStatus.ACTIVE
    assert store.audit_entries[-1].reason == "Maintenance completed manually"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_maintenance_listing_status(maintenance_coordinator, listed_units):
    await maintenance_coordinator.start_maintenance_manually(
        "unit-1", "Flooring replacement", ACTOR, maintenance_request_id="mr-42"
    )

    status = await maintenance_coordinator.get_maintenance_listing_status("unit-1")
    idle = await maintenance_coordinator.get_maintenance_listing_status("unit-2")

    assert status.is_in_maintenance is True
    assert status.maintenance_request_id == "mr-42"
    assert status.can_restore is True
    assert idle.is_in_maintenance is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_maintenance_listing_status_on_failure(maintenance_coordinator):
    with patch.object(
        maintenance_coordinator.listing_service,
        "maintenance_mode_status",
        new=AsyncMock(side_effect=ConnectionError("database unreachable")),
    ):
        status = await maintenance_coordinator.get_maintenance_listing_status("unit-1")

    assert status.is_in_maintenance is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_units_in_maintenance_mode(maintenance_coordinator, store, listed_units):
    await maintenance_coordinator.start_maintenance_manually(
        "unit-2", "Electrical work", ACTOR, maintenance_request_id="mr-7"
    )

    in_maintenance = await maintenance_coordinator.units_in_maintenance_mode("org-1")
    other_org = await maintenance_coordinator.units_in_maintenance_mode("org-2")

    assert [u.unit_id for u in in_maintenance] == ["unit-2"]
    summary = in_maintenance[0]
    assert summary.unit_number == store.units["unit-2"].unit_number
    assert summary.property_name == store.properties["prop-org-1-unit"].name
    assert summary.maintenance_request_id == "mr-7"
    assert summary.reason == "Electrical work"
    assert other_org == []
