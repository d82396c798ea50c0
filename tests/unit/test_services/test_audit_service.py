"""Tests for the audit trail recorder."""

import pytest
from datetime import datetime, timedelta, timezone
from src.models.audit import AuditAction, AuditFilter
from src.models.listing import ListingStatus
from tests.utils.assertions import assert_valid_audit_entry


NOW = datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)


async def _record(audit_service, unit_id="unit-1", action=AuditAction.STATUS_CHANGED,
                  new_status=ListingStatus.ACTIVE, actor_id="manager-1", timestamp=None, **kwargs):
    return await audit_service.record(
        unit_id=unit_id,
        action=action,
        new_status=new_status,
        actor_id=actor_id,
        timestamp=timestamp,
        **kwargs,
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_appends_sealed_entry(audit_service, store):
    entry = await _record(
        audit_service,
        action=AuditAction.LISTING_CREATED,
        previous_status=ListingStatus.PRIVATE,
        listing_id="listing-1",
        changes={"title": "101 - 2BR/1BA"},
    )

    assert_valid_audit_entry(entry)
    assert entry.previous_hash is None
    assert store.audit_entries == [entry]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_chains_entries_per_unit(audit_service):
    """Test each entry links to the previous entry of the same unit only."""
    first = await _record(audit_service, unit_id="unit-1")
    other = await _record(audit_service, unit_id="unit-2")
    second = await _record(audit_service, unit_id="unit-1", new_status=ListingStatus.SUSPENDED)

    assert second.previous_hash == first.entry_hash
    assert other.previous_hash is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_history_newest_first_and_restartable(audit_service):
    statuses = [ListingStatus.ACTIVE, ListingStatus.SUSPENDED, ListingStatus.ACTIVE]
    recorded = [await _record(audit_service, new_status=s) for s in statuses]

    history = await audit_service.history("unit-1")
    again = await audit_service.history("unit-1")

    assert [e.entry_id for e in history] == [e.entry_id for e in reversed(recorded)]
    assert again == history


@pytest.mark.unit
@pytest.mark.asyncio
async def test_history_limit(audit_service):
    for _ in range(5):
        await _record(audit_service)

    assert len(await audit_service.history("unit-1", limit=2)) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_history_filters_by_listing(audit_service):
    await _record(audit_service, listing_id="listing-1")
    await _record(audit_service, listing_id="listing-2")

    history = await audit_service.listing_history("listing-1")

    assert [e.listing_id for e in history] == ["listing-1"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_trail_pagination(audit_service):
    for _ in range(5):
        await _record(audit_service)

    page1 = await audit_service.trail(AuditFilter(unit_id="unit-1", limit=2))
    page3 = await audit_service.trail(AuditFilter(unit_id="unit-1", limit=2, offset=4))

    assert page1.total == 5
    assert len(page1.entries) == 2
    assert page1.has_more is True
    assert page1.next_offset == 2
    assert len(page3.entries) == 1
    assert page3.has_more is False
    assert page3.next_offset is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_statistics_derived_from_entries(audit_service):
    """Test statistics reconcile with the recorded log."""
    await _record(audit_service, action=AuditAction.LISTING_CREATED, actor_id="a", timestamp=NOW)
    await _record(audit_service, action=AuditAction.STATUS_CHANGED, new_status=ListingStatus.SUSPENDED,
                  actor_id="a", timestamp=NOW - timedelta(days=1))
    await _record(audit_service, unit_id="unit-2", action=AuditAction.LISTING_CREATED, actor_id="b",
                  timestamp=NOW - timedelta(days=1))
    await _record(audit_service, unit_id="unit-3", action=AuditAction.LISTING_REMOVED,
                  new_status=ListingStatus.PRIVATE, actor_id="a", timestamp=NOW - timedelta(days=45))

    stats = await audit_service.statistics(now=NOW)

    assert stats.total_entries == 4
    assert stats.action_breakdown == {"LISTING_CREATED": 2, "STATUS_CHANGED": 1, "LISTING_REMOVED": 1}
    assert stats.status_breakdown == {"ACTIVE": 2, "SUSPENDED": 1, "PRIVATE": 1}
    assert [(u.actor_id, u.action_count) for u in stats.user_activity] == [("a", 3), ("b", 1)]
    assert len(stats.timeline_data) == 30
    assert stats.timeline_data[-1].date == "2024-12-09"
    assert stats.timeline_data[-1].count == 1
    assert stats.timeline_data[-2].count == 2
    assert sum(p.count for p in stats.timeline_data) == 3
    assert sum(stats.action_breakdown.values()) == stats.total_entries


@pytest.mark.unit
@pytest.mark.asyncio
async def test_statistics_respects_filters(audit_service):
    await _record(audit_service, unit_id="unit-1")
    await _record(audit_service, unit_id="unit-2")
    await _record(audit_service, unit_id="unit-2")

    stats = await audit_service.statistics(AuditFilter(unit_id="unit-2", limit=1), now=NOW)

    assert stats.total_entries == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_statistics_user_activity_top_ten(audit_service):
    for i in range(12):
        await _record(audit_service, actor_id=f"actor-{i:02d}")

    stats = await audit_service.statistics(now=NOW)

    assert len(stats.user_activity) == 10


@pytest.mark.unit
@pytest.mark.asyncio
async def test_verify_history_intact_chain(audit_service):
    for status in (ListingStatus.ACTIVE, ListingStatus.SUSPENDED, ListingStatus.ACTIVE):
        await _record(audit_service, new_status=status)

    assert await audit_service.verify_history("unit-1") is True
    assert await audit_service.verify_history("unit-without-history") is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_verify_history_detects_tampering(audit_service, store):
    await _record(audit_service)
    await _record(audit_service, new_status=ListingStatus.SUSPENDED)

    store.audit_entries[0] = store.audit_entries[0].model_copy(update={"actor_id": "intruder"})

    assert await audit_service.verify_history("unit-1") is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_verify_history_detects_deleted_entry(audit_service, store):
    for _ in range(3):
        await _record(audit_service)

    del store.audit_entries[1]

    assert await audit_service.verify_history("unit-1") is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_latest_action(audit_service):
    await _record(audit_service, action=AuditAction.MAINTENANCE_STARTED, new_status=ListingStatus.MAINTENANCE,
                  changes={"previous_status": "SUSPENDED"})
    await _record(audit_service, action=AuditAction.STATUS_CHANGED)

    latest = await audit_service.latest_action("unit-1", AuditAction.MAINTENANCE_STARTED)

    assert latest.changes["previous_status"] == "SUSPENDED"
    assert await audit_service.latest_action("unit-2", AuditAction.MAINTENANCE_STARTED) is None
