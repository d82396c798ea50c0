"""
Audit trail recorder for listing transitions.

Entries are append-only. Each one is sealed with the SHA-256 of its
canonical JSON and linked to the unit's previous entry through
``previous_hash``, so a unit's history can be verified end to end.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from src.models.audit import (
    AuditAction,
    AuditEntry,
    AuditFilter,
    AuditStatistics,
    PaginatedAuditResult,
    TimelinePoint,
    UserActivity,
)
from src.models.listing import ListingStatus
from src.repositories.base import AuditRepository
from src.utils.ids import generate_audit_entry_id
from src.utils.locks import KeyedLock
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

TIMELINE_DAYS = 30
TOP_USERS = 10


class AuditService:
    """Records and reads the listing audit trail."""

    def __init__(self, repository: AuditRepository):
        self.repository = repository
        self._chain_locks = KeyedLock()

    async def record(
        self,
        unit_id: str,
        action: AuditAction,
        new_status: ListingStatus,
        actor_id: str,
        listing_id: Optional[str] = None,
        previous_status: Optional[ListingStatus] = None,
        reason: Optional[str] = None,
        changes: Optional[dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditEntry:
        """Append one sealed entry to the unit's chain."""
        async with self._chain_locks.hold(unit_id):
            latest = await self.repository.latest_for_unit(unit_id)
            entry = AuditEntry(
                entry_id=generate_audit_entry_id(),
                unit_id=unit_id,
                listing_id=listing_id,
                action=action,
                previous_status=previous_status,
                new_status=new_status,
                actor_id=actor_id,
                timestamp=timestamp or datetime.now(timezone.utc),
                reason=reason,
                changes=changes or {},
                previous_hash=latest.entry_hash if latest else None,
            ).sealed()
            await self.repository.append(entry)

        logger.info(
            "Audit entry recorded",
            entry_id=entry.entry_id,
            unit_id=unit_id,
            listing_id=listing_id,
            action=action.value,
            previous_status=previous_status.value if previous_status else None,
            new_status=new_status.value,
            actor_id=mask_user_id(actor_id),
        )
        return entry

    async def history(self, unit_id: str, limit: int = 100) -> list[AuditEntry]:
        """Newest-first history of a unit; each call re-reads the log."""
        return await self.repository.query(AuditFilter(unit_id=unit_id, limit=limit))

    async def latest_action(self, unit_id: str, action: AuditAction) -> Optional[AuditEntry]:
        """Most recent entry of one action type for a unit."""
        entries = await self.repository.query(AuditFilter(unit_id=unit_id, action=action, limit=1))
        return entries[0] if entries else None

    async def listing_history(self, listing_id: str, limit: int = 100) -> list[AuditEntry]:
        return await self.repository.query(AuditFilter(listing_id=listing_id, limit=limit))

    async def trail(self, filter: AuditFilter) -> PaginatedAuditResult:
        entries = await self.repository.query(filter)
        total = await self.repository.count(filter)
        consumed = filter.offset + len(entries)
        has_more = consumed < total
        return PaginatedAuditResult(
            entries=entries,
            total=total,
            has_more=has_more,
            next_offset=consumed if has_more else None,
        )

    async def statistics(
        self,
        filters: Optional[AuditFilter] = None,
        now: Optional[datetime] = None,
    ) -> AuditStatistics:
        """Aggregate counts over every entry matching ``filters``."""
        scope = (filters or AuditFilter()).model_copy(update={"limit": None, "offset": 0})
        entries = await self.repository.query(scope)

        action_breakdown = Counter(e.action.value for e in entries)
        status_breakdown = Counter(e.new_status.value for e in entries)
        per_actor = Counter(e.actor_id for e in entries)

        user_activity = [
            UserActivity(actor_id=actor_id, action_count=count)
            for actor_id, count in sorted(per_actor.items(), key=lambda item: (-item[1], item[0]))[:TOP_USERS]
        ]

        today = (now or datetime.now(timezone.utc)).date()
        per_day = Counter(e.timestamp.date() for e in entries)
        timeline_data = []
        for days_back in range(TIMELINE_DAYS - 1, -1, -1):
            day = today - timedelta(days=days_back)
            timeline_data.append(TimelinePoint(date=day.isoformat(), count=per_day.get(day, 0)))

        return AuditStatistics(
            total_entries=len(entries),
            action_breakdown=dict(action_breakdown),
            status_breakdown=dict(status_breakdown),
            user_activity=user_activity,
            timeline_data=timeline_data,
        )

    async def verify_history(self, unit_id: str) -> bool:
        """
        Check that a unit's entries are intact and form one unbroken chain.

        The walk is by hash linkage rather than by timestamp, so entries
        recorded within the same instant verify regardless of read order.
        """
        entries = await self.repository.query(AuditFilter(unit_id=unit_id, limit=None))
        if not entries:
            return True

        for entry in entries:
            if not entry.is_intact():
                logger.warning("Audit entry failed hash check", unit_id=unit_id, entry_id=entry.entry_id)
                return False

        by_previous: dict[Optional[str], AuditEntry] = {}
        for entry in entries:
            if entry.previous_hash in by_previous:
                logger.warning("Audit chain forks", unit_id=unit_id, entry_id=entry.entry_id)
                return False
            by_previous[entry.previous_hash] = entry

        current = by_previous.get(None)
        visited = 0
        while current is not None:
            visited += 1
            current = by_previous.get(current.entry_hash)

        if visited != len(entries):
            logger.warning("Audit chain broken", unit_id=unit_id, linked=visited, total=len(entries))
            return False
        return True
