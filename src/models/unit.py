"""Unit, property and lease models (read-only collaborators)."""

from enum import Enum
from typing import Optional
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, Field


class LeaseStatus(str, Enum):
    """Lease states as reported by the lease subsystem."""
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"


class Property(BaseModel):
    """Property that owns units."""
    property_id: str = Field(..., description="Property ID")
    organization_id: Optional[str] = Field(None, description="Owning organization ID")
    name: Optional[str] = Field(None, description="Property name")
    address: Optional[str] = Field(None, description="Street address")
    city: Optional[str] = Field(None, description="City")


class Unit(BaseModel):
    """Rentable space belonging to a property."""
    unit_id: str = Field(..., description="Unit ID")
    property_id: str = Field(..., description="Owning property ID")
    unit_number: str = Field(..., description="Unit number/label")
    rent_amount: Optional[Decimal] = Field(None, description="Configured monthly rent")
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[float] = Field(None, ge=0)
    square_footage: Optional[int] = Field(None, ge=0)
    listing_id: Optional[str] = Field(None, description="Current listing, if any")


class Lease(BaseModel):
    """Lease record; at most one ACTIVE lease per unit."""
    lease_id: str = Field(..., description="Lease ID")
    unit_id: str = Field(..., description="Leased unit ID")
    status: LeaseStatus = Field(..., description="Lease status")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
