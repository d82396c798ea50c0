"""Listing models."""

from enum import Enum
from typing import Optional
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, Field, model_validator


class ListingStatus(str, Enum):
    """Listing lifecycle states."""
    PRIVATE = "PRIVATE"            # Unit exists but not listed
    ACTIVE = "ACTIVE"              # Listed and visible in marketplace
    SUSPENDED = "SUSPENDED"        # Temporarily hidden from marketplace
    PENDING = "PENDING"            # Created but not yet active
    EXPIRED = "EXPIRED"            # Past its expiration date
    MAINTENANCE = "MAINTENANCE"    # Hidden while repair work is under way
    COMING_SOON = "COMING_SOON"    # Listed but not yet available


class ListingPayload(BaseModel):
    """Caller-supplied listing data; omitted fields get defaults from the unit."""
    title: Optional[str] = Field(None, description="Listing title")
    description: Optional[str] = Field(None, description="Listing description")
    price: Optional[Decimal] = Field(None, description="Monthly price")
    availability_date: Optional[datetime] = Field(None, description="Date the unit becomes available")
    expiration_date: Optional[datetime] = Field(None, description="Date the listing expires")
    reason: Optional[str] = Field(None, description="Free-form reason, used by maintenance operations")


class Listing(BaseModel):
    """Marketplace-visible record for a unit."""
    listing_id: str = Field(..., description="Listing ID (ULID)")
    unit_id: str = Field(..., description="Owning unit ID")
    organization_id: Optional[str] = Field(None, description="Owning organization (opaque)")
    status: ListingStatus = Field(default=ListingStatus.ACTIVE, description="Current listing status")
    title: str = Field(..., description="Listing title")
    description: str = Field(..., description="Listing description")
    price: Decimal = Field(..., gt=0, description="Monthly price")
    availability_date: datetime = Field(..., description="Date the unit becomes available")
    expiration_date: Optional[datetime] = Field(None, description="Date the listing expires")
    created_by: Optional[str] = Field(None, description="Actor that created the listing")
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _expiration_after_availability(self) -> "Listing":
        if self.expiration_date is not None and self.expiration_date <= self.availability_date:
            raise ValueError("expiration_date must be after availability_date")
        return self


class ListingDecision(str, Enum):
    """Manager's choice for a unit whose lease has ended."""
    LIST_UNIT = "LIST_UNIT"
    KEEP_PRIVATE = "KEEP_PRIVATE"


class TransitionReport(BaseModel):
    """Outcome of one scheduled pass over time-based transitions."""
    processed: int = 0
    activated: int = 0
    expired: int = 0
    errors: list[str] = Field(default_factory=list)
