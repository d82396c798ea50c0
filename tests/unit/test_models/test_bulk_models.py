"""Tests for bulk operation and maintenance models."""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError
from src.models.bulk import BulkOperation, BulkResult, BulkUpdateResult
from src.models.maintenance import MaintenanceModeConfig, MaintenanceTicket, TicketPriority


@pytest.mark.unit
def test_bulk_operation_accepts_unrecognized_action():
    """Test unknown actions parse so they can be reported per unit."""
    operation = BulkOperation(unit_id="unit-1", action="ARCHIVE")

    assert operation.action == "ARCHIVE"
    assert operation.listing_data is None


@pytest.mark.unit
def test_bulk_result_defaults():
    result = BulkResult()

    assert result.successful == []
    assert result.failed == []
    assert result.summary.total == 0
    assert result.cancelled is False


@pytest.mark.unit
def test_bulk_update_result_without_rollback():
    result = BulkUpdateResult(success=True)

    assert result.rollback_attempted is False
    assert result.rollback_succeeded is None


@pytest.mark.unit
def test_maintenance_config_requires_reason():
    """Test an empty reason is rejected."""
    with pytest.raises(ValidationError):
        MaintenanceModeConfig(unit_id="unit-1", start_date=datetime.now(timezone.utc), reason="")


@pytest.mark.unit
def test_maintenance_config_defaults():
    config = MaintenanceModeConfig(
        unit_id="unit-1",
        start_date=datetime.now(timezone.utc),
        reason="Water damage repair",
    )

    assert config.notify_tenants is True
    assert config.auto_restore is False
    assert config.maintenance_request_id is None


@pytest.mark.unit
def test_ticket_priority_default():
    ticket = MaintenanceTicket(id="mr-1", unit_id="unit-1")

    assert ticket.priority == TicketPriority.MEDIUM
    assert ticket.title == ""
