"""Application eligibility model."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from src.models.listing import ListingStatus


class ApplicationEligibility(BaseModel):
    """Whether a unit currently accepts tenant applications."""
    model_config = ConfigDict(frozen=True)

    unit_id: str
    is_eligible: bool
    listing_status: Optional[ListingStatus] = Field(None, description="Status the decision was based on")
    reason: Optional[str] = None
