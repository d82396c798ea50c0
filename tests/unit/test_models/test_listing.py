"""Tests for listing models."""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError
from src.models.listing import Listing, ListingPayload, ListingStatus, TransitionReport


NOW = datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)


def _listing(**overrides) -> Listing:
    data = {
        "listing_id": "01JEQ0000000000000000000AA",
        "unit_id": "unit-1",
        "title": "101 - 2BR/1BA",
        "description": "Spacious unit available for rent.",
        "price": Decimal("1500"),
        "availability_date": NOW,
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Listing(**data)


@pytest.mark.unit
def test_listing_defaults_to_active():
    """Test a listing without explicit status is ACTIVE."""
    listing = _listing()

    assert listing.status == ListingStatus.ACTIVE
    assert listing.expiration_date is None
    assert listing.organization_id is None


@pytest.mark.unit
def test_listing_rejects_non_positive_price():
    """Test price must be positive."""
    with pytest.raises(ValidationError):
        _listing(price=Decimal("0"))


@pytest.mark.unit
def test_listing_expiration_must_follow_availability():
    """Test expiration date must be after availability date."""
    with pytest.raises(ValidationError) as exc_info:
        _listing(expiration_date=NOW - timedelta(days=1))

    assert "expiration_date must be after availability_date" in str(exc_info.value)


@pytest.mark.unit
def test_listing_expiration_equal_to_availability_rejected():
    """Test expiration equal to availability is rejected."""
    with pytest.raises(ValidationError):
        _listing(expiration_date=NOW)


@pytest.mark.unit
def test_listing_payload_all_optional():
    """Test an empty payload is valid (defaults are applied later)."""
    payload = ListingPayload()

    assert payload.title is None
    assert payload.price is None


@pytest.mark.unit
def test_listing_status_values():
    """Test the closed set of listing statuses."""
    assert {s.value for s in ListingStatus} == {
        "PRIVATE", "ACTIVE", "SUSPENDED", "PENDING", "EXPIRED", "MAINTENANCE", "COMING_SOON",
    }


@pytest.mark.unit
def test_transition_report_defaults():
    report = TransitionReport()

    assert report.processed == 0
    assert report.errors == []
