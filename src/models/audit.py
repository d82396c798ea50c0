"""Audit trail models."""

import hashlib
import json
from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from src.models.listing import ListingStatus


class AuditAction(str, Enum):
    """Transitions recorded in the audit trail."""
    LISTING_CREATED = "LISTING_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    LISTING_REMOVED = "LISTING_REMOVED"
    BULK_LISTING_CREATED = "BULK_LISTING_CREATED"
    MAINTENANCE_STARTED = "MAINTENANCE_STARTED"
    MAINTENANCE_ENDED = "MAINTENANCE_ENDED"
    LISTING_DECISION_LIST_UNIT = "LISTING_DECISION_LIST_UNIT"
    LISTING_DECISION_KEEP_PRIVATE = "LISTING_DECISION_KEEP_PRIVATE"
    LISTING_UPDATED = "LISTING_UPDATED"
    LISTING_AUTO_ACTIVATED = "LISTING_AUTO_ACTIVATED"
    LISTING_AUTO_EXPIRED = "LISTING_AUTO_EXPIRED"
    EXPIRATION_EXTENDED = "EXPIRATION_EXTENDED"
    LISTING_RESTORED = "LISTING_RESTORED"


class AuditEntry(BaseModel):
    """
    Immutable record of a listing transition.

    ``entry_hash`` is the SHA-256 of the entry's canonical JSON (including
    ``previous_hash``), so each unit's history forms a verifiable chain.
    """
    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(..., description="Audit entry ID (ULID)")
    unit_id: str = Field(..., description="Subject unit ID")
    listing_id: Optional[str] = Field(None, description="Subject listing ID (null once removed)")
    action: AuditAction
    previous_status: Optional[ListingStatus] = None
    new_status: ListingStatus
    actor_id: str = Field(..., description="Actor that performed the change")
    timestamp: datetime
    reason: Optional[str] = None
    changes: dict[str, Any] = Field(default_factory=dict, description="Free-form change payload")
    previous_hash: Optional[str] = Field(None, description="Hash of the unit's previous entry")
    entry_hash: str = Field("", description="sha256:<hex> of the canonical entry")

    def canonical_json(self) -> str:
        payload = self.model_dump(mode="json", exclude={"entry_hash"})
        return json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))

    def compute_hash(self) -> str:
        digest = hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()
        return f"sha256:{digest}"

    def sealed(self) -> "AuditEntry":
        """Return a copy carrying its computed hash."""
        return self.model_copy(update={"entry_hash": self.compute_hash()})

    def is_intact(self) -> bool:
        return bool(self.entry_hash) and self.entry_hash == self.compute_hash()


class AuditFilter(BaseModel):
    """Filters for audit trail queries and statistics."""
    unit_id: Optional[str] = None
    listing_id: Optional[str] = None
    actor_id: Optional[str] = None
    action: Optional[AuditAction] = None
    status: Optional[ListingStatus] = Field(None, description="Matches new_status")
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: Optional[int] = Field(50, ge=1)
    offset: int = Field(0, ge=0)

    def matches(self, entry: AuditEntry) -> bool:
        if self.unit_id and entry.unit_id != self.unit_id:
            return False
        if self.listing_id and entry.listing_id != self.listing_id:
            return False
        if self.actor_id and entry.actor_id != self.actor_id:
            return False
        if self.action and entry.action != self.action:
            return False
        if self.status and entry.new_status != self.status:
            return False
        if self.date_from and entry.timestamp < self.date_from:
            return False
        if self.date_to and entry.timestamp > self.date_to:
            return False
        return True


class PaginatedAuditResult(BaseModel):
    entries: list[AuditEntry]
    total: int
    has_more: bool
    next_offset: Optional[int] = None


class UserActivity(BaseModel):
    actor_id: str
    action_count: int


class TimelinePoint(BaseModel):
    date: str = Field(..., description="ISO date (YYYY-MM-DD)")
    count: int


class AuditStatistics(BaseModel):
    """Aggregates derived purely from recorded entries."""
    total_entries: int
    action_breakdown: dict[str, int] = Field(default_factory=dict)
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    user_activity: list[UserActivity] = Field(default_factory=list)
    timeline_data: list[TimelinePoint] = Field(default_factory=list)
