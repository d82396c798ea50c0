"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from src.repositories.memory import (  # noqa: E402
    InMemoryAuditRepository,
    InMemoryListingRepository,
    InMemoryStore,
    InMemoryUnitRepository,
)
from src.services.audit_service import AuditService  # noqa: E402
from src.services.bulk_operations import BulkOperationService  # noqa: E402
from src.services.eligibility_service import EligibilityService  # noqa: E402
from src.services.error_handler import ErrorHandler, RetryConfig  # noqa: E402
from src.services.listing_service import ListingService  # noqa: E402
from src.services.maintenance_coordinator import MaintenanceCoordinator  # noqa: E402
from tests.utils.factories import seed_units  # noqa: E402


ORGANIZATION_ID = "org-1"
ACTOR_ID = "manager-1"


@pytest.fixture
def store():
    """Empty in-memory persistence."""
    return InMemoryStore()


@pytest.fixture
def unit_repository(store):
    return InMemoryUnitRepository(store)


@pytest.fixture
def listing_repository(store):
    return InMemoryListingRepository(store)


@pytest.fixture
def audit_repository(store):
    return InMemoryAuditRepository(store)


@pytest.fixture
def fast_retry_config():
    """Retry policy with millisecond delays so tests stay fast."""
    return RetryConfig(max_attempts=3, base_delay_ms=1, max_delay_ms=10, backoff_multiplier=2)


@pytest.fixture
def error_handler(fast_retry_config):
    return ErrorHandler(fast_retry_config)


@pytest.fixture
def audit_service(audit_repository):
    return AuditService(audit_repository)


@pytest.fixture
def listing_service(unit_repository, listing_repository, audit_service, error_handler):
    return ListingService(unit_repository, listing_repository, audit_service, error_handler)


@pytest.fixture
def eligibility_service(unit_repository, listing_repository):
    return EligibilityService(unit_repository, listing_repository)


@pytest.fixture
def maintenance_coordinator(listing_service, unit_repository):
    return MaintenanceCoordinator(listing_service, unit_repository)


@pytest.fixture
def bulk_service(listing_service):
    return BulkOperationService(listing_service)


@pytest.fixture
def units(store):
    """Three units (unit-1..unit-3) in one property of org-1."""
    return seed_units(store, count=3, organization_id=ORGANIZATION_ID)


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client; query builders chain back to themselves."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "in_", "gte", "lte",
                   "order", "range", "limit", "offset"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[], count=0)
    client.table.return_value = query
    client.query = query
    return client


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
