"""Bulk listing operation models."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from src.models.listing import ListingPayload


class BulkActionType(str, Enum):
    """Recognized bulk actions."""
    LIST = "LIST"
    UNLIST = "UNLIST"
    SUSPEND = "SUSPEND"
    ACTIVATE = "ACTIVATE"


class BulkOperationError(str, Enum):
    """Batch-level error codes."""
    INVALID_INPUT = "INVALID_INPUT"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"


class BulkOperation(BaseModel):
    """
    One action within a batch.

    ``action`` stays a plain string so unrecognized actions reach the
    orchestrator and are reported per unit instead of failing the parse.
    """
    unit_id: str = Field(..., description="Target unit ID")
    action: str = Field(..., description="LIST, UNLIST, SUSPEND or ACTIVATE")
    listing_data: Optional[ListingPayload] = Field(None, description="Required for LIST")


class BulkFailure(BaseModel):
    unit_id: str
    error: str


class BulkSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0


class BulkResult(BaseModel):
    """Per-unit breakdown of a batch."""
    successful: list[str] = Field(default_factory=list)
    failed: list[BulkFailure] = Field(default_factory=list)
    summary: BulkSummary = Field(default_factory=BulkSummary)
    cancelled: bool = Field(False, description="Batch stopped early by the caller")


class BulkUpdateResult(BaseModel):
    """Outcome of a whole batch call."""
    success: bool
    data: Optional[BulkResult] = None
    error: Optional[BulkOperationError] = None
    message: Optional[str] = None
    rollback_attempted: bool = False
    rollback_succeeded: Optional[bool] = None
