"""In-memory repositories used by tests and local runs."""

from typing import Any, Iterable, Optional

from src.models.audit import AuditEntry, AuditFilter
from src.models.listing import Listing, ListingStatus
from src.models.unit import Lease, LeaseStatus, Property, Unit
from src.repositories.base import AuditRepository, ListingRepository, UnitRepository
from src.utils.errors import conflict_error, not_found_error


class InMemoryStore:
    """Shared state behind the in-memory repositories."""

    def __init__(self):
        self.units: dict[str, Unit] = {}
        self.properties: dict[str, Property] = {}
        self.leases: dict[str, Lease] = {}
        self.listings: dict[str, Listing] = {}
        self.audit_entries: list[AuditEntry] = []

    def add_property(self, prop: Property) -> Property:
        self.properties[prop.property_id] = prop
        return prop

    def add_unit(self, unit: Unit) -> Unit:
        self.units[unit.unit_id] = unit
        return unit

    def add_lease(self, lease: Lease) -> Lease:
        self.leases[lease.lease_id] = lease
        return lease


class InMemoryUnitRepository(UnitRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_unit(self, unit_id: str) -> Optional[Unit]:
        return self.store.units.get(unit_id)

    async def get_property(self, property_id: str) -> Optional[Property]:
        return self.store.properties.get(property_id)

    async def get_active_lease(self, unit_id: str) -> Optional[Lease]:
        for lease in self.store.leases.values():
            if lease.unit_id == unit_id and lease.status == LeaseStatus.ACTIVE:
                return lease
        return None

    async def list_units(self, organization_id: str) -> list[Unit]:
        property_ids = {
            p.property_id for p in self.store.properties.values()
            if p.organization_id == organization_id
        }
        return [u for u in self.store.units.values() if u.property_id in property_ids]

    async def set_unit_listing(self, unit_id: str, listing_id: Optional[str]) -> Unit:
        unit = self.store.units.get(unit_id)
        if unit is None:
            raise not_found_error("Unit", unit_id)
        updated = unit.model_copy(update={"listing_id": listing_id})
        self.store.units[unit_id] = updated
        return updated


class InMemoryListingRepository(ListingRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get(self, listing_id: str) -> Optional[Listing]:
        return self.store.listings.get(listing_id)

    async def get_by_unit(self, unit_id: str) -> Optional[Listing]:
        for listing in self.store.listings.values():
            if listing.unit_id == unit_id:
                return listing
        return None

    async def insert(self, listing: Listing) -> Listing:
        if await self.get_by_unit(listing.unit_id) is not None:
            raise conflict_error(
                "create listing",
                "unit already has a listing",
                "unit without listing",
                code="UNIT_ALREADY_LISTED",
            )
        self.store.listings[listing.listing_id] = listing
        return listing

    async def update(self, listing_id: str, changes: dict[str, Any]) -> Listing:
        listing = self.store.listings.get(listing_id)
        if listing is None:
            raise not_found_error("Listing", listing_id)
        updated = listing.model_copy(update=changes)
        self.store.listings[listing_id] = updated
        return updated

    async def delete(self, listing_id: str) -> None:
        self.store.listings.pop(listing_id, None)

    async def list_by_status(self, statuses: Iterable[ListingStatus]) -> list[Listing]:
        wanted = set(statuses)
        return [listing for listing in self.store.listings.values() if listing.status in wanted]


class InMemoryAuditRepository(AuditRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def _newest_first(self, filter: AuditFilter) -> list[AuditEntry]:
        # reversed() keeps later appends first among equal timestamps
        matching = [e for e in reversed(self.store.audit_entries) if filter.matches(e)]
        return sorted(matching, key=lambda e: e.timestamp, reverse=True)

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self.store.audit_entries.append(entry)
        return entry

    async def query(self, filter: AuditFilter) -> list[AuditEntry]:
        entries = self._newest_first(filter)
        end = None if filter.limit is None else filter.offset + filter.limit
        return entries[filter.offset:end]

    async def count(self, filter: AuditFilter) -> int:
        return len(self._newest_first(filter))

    async def latest_for_unit(self, unit_id: str) -> Optional[AuditEntry]:
        # last appended, which is the chain head even for backdated entries
        for entry in reversed(self.store.audit_entries):
            if entry.unit_id == unit_id:
                return entry
        return None
