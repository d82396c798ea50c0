"""Repository interfaces the listing core depends on."""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from src.models.audit import AuditEntry, AuditFilter
from src.models.listing import Listing, ListingStatus
from src.models.unit import Lease, Property, Unit


class UnitRepository(ABC):
    """Units, their properties and leases."""

    @abstractmethod
    async def get_unit(self, unit_id: str) -> Optional[Unit]:
        ...

    @abstractmethod
    async def get_property(self, property_id: str) -> Optional[Property]:
        ...

    @abstractmethod
    async def get_active_lease(self, unit_id: str) -> Optional[Lease]:
        """Return the unit's ACTIVE lease, if any."""

    @abstractmethod
    async def list_units(self, organization_id: str) -> list[Unit]:
        """Units of every property owned by the organization."""

    @abstractmethod
    async def set_unit_listing(self, unit_id: str, listing_id: Optional[str]) -> Unit:
        """Point the unit at a listing, or clear the reference with None."""


class ListingRepository(ABC):

    @abstractmethod
    async def get(self, listing_id: str) -> Optional[Listing]:
        ...

    @abstractmethod
    async def get_by_unit(self, unit_id: str) -> Optional[Listing]:
        ...

    @abstractmethod
    async def insert(self, listing: Listing) -> Listing:
        """Insert a listing; a second listing for the same unit is a conflict."""

    @abstractmethod
    async def update(self, listing_id: str, changes: dict[str, Any]) -> Listing:
        ...

    @abstractmethod
    async def delete(self, listing_id: str) -> None:
        ...

    @abstractmethod
    async def list_by_status(self, statuses: Iterable[ListingStatus]) -> list[Listing]:
        ...


class AuditRepository(ABC):
    """Append-only store; entries are never updated or deleted."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> AuditEntry:
        ...

    @abstractmethod
    async def query(self, filter: AuditFilter) -> list[AuditEntry]:
        """Matching entries newest first, honoring ``limit``/``offset``."""

    @abstractmethod
    async def count(self, filter: AuditFilter) -> int:
        ...

    @abstractmethod
    async def latest_for_unit(self, unit_id: str) -> Optional[AuditEntry]:
        ...
