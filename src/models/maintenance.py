"""Maintenance mode models."""

from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from src.models.listing import ListingStatus


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketStatus(str, Enum):
    """Maintenance ticket states reported by the ticket subsystem."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class MaintenanceTicket(BaseModel):
    """Maintenance request as delivered by the ticket feed."""
    id: str = Field(..., description="Maintenance request ID")
    unit_id: str = Field(..., description="Affected unit ID")
    priority: TicketPriority = Field(default=TicketPriority.MEDIUM)
    title: str = Field(default="", description="Ticket title")
    description: str = Field(default="", description="Ticket description")


class MaintenanceModeConfig(BaseModel):
    """Request to take a unit's listing offline for maintenance."""
    unit_id: str
    start_date: datetime
    reason: str = Field(..., min_length=1)
    estimated_end_date: Optional[datetime] = None
    maintenance_request_id: Optional[str] = None
    notify_tenants: bool = True
    auto_restore: bool = False


class MaintenanceModeStatus(BaseModel):
    """Maintenance state derived from the audit trail."""
    is_in_maintenance: bool
    maintenance_request_id: Optional[str] = None
    start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    reason: Optional[str] = None
    previous_status: Optional[ListingStatus] = None
    can_restore: bool = False


class MaintenanceListingStatus(BaseModel):
    """Dashboard view of a unit's maintenance state."""
    is_in_maintenance: bool
    maintenance_request_id: Optional[str] = None
    can_restore: bool = False
    estimated_end_date: Optional[datetime] = None


class UnitInMaintenance(BaseModel):
    unit_id: str
    unit_number: str
    property_name: str
    maintenance_request_id: Optional[str] = None
    start_date: datetime
    estimated_end_date: Optional[datetime] = None
    reason: str
