"""Supabase-backed repositories."""

from typing import Any, Iterable, Optional
from pydantic_core import to_jsonable_python
from supabase import Client

from src.models.audit import AuditEntry, AuditFilter
from src.models.listing import Listing, ListingStatus
from src.models.unit import Lease, LeaseStatus, Property, Unit
from src.repositories.base import AuditRepository, ListingRepository, UnitRepository
from src.services.supabase_client import execute, execute_count, get_supabase_client
from src.utils.errors import not_found_error

UNITS_TABLE = "units"
PROPERTIES_TABLE = "properties"
LEASES_TABLE = "leases"
LISTINGS_TABLE = "listings"
AUDIT_TABLE = "listing_audit_entries"


class _SupabaseRepository:

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def table(self, name: str):
        return self.client.table(name)


class SupabaseUnitRepository(_SupabaseRepository, UnitRepository):

    async def get_unit(self, unit_id: str) -> Optional[Unit]:
        rows = await execute(self.table(UNITS_TABLE).select("*").eq("unit_id", unit_id).limit(1))
        return Unit.model_validate(rows[0]) if rows else None

    async def get_property(self, property_id: str) -> Optional[Property]:
        rows = await execute(
            self.table(PROPERTIES_TABLE).select("*").eq("property_id", property_id).limit(1)
        )
        return Property.model_validate(rows[0]) if rows else None

    async def get_active_lease(self, unit_id: str) -> Optional[Lease]:
        rows = await execute(
            self.table(LEASES_TABLE)
            .select("*")
            .eq("unit_id", unit_id)
            .eq("status", LeaseStatus.ACTIVE.value)
            .limit(1)
        )
        return Lease.model_validate(rows[0]) if rows else None

    async def list_units(self, organization_id: str) -> list[Unit]:
        properties = await execute(
            self.table(PROPERTIES_TABLE).select("property_id").eq("organization_id", organization_id)
        )
        property_ids = [p["property_id"] for p in properties]
        if not property_ids:
            return []
        rows = await execute(self.table(UNITS_TABLE).select("*").in_("property_id", property_ids))
        return [Unit.model_validate(r) for r in rows]

    async def set_unit_listing(self, unit_id: str, listing_id: Optional[str]) -> Unit:
        rows = await execute(
            self.table(UNITS_TABLE).update({"listing_id": listing_id}).eq("unit_id", unit_id)
        )
        if not rows:
            raise not_found_error("Unit", unit_id)
        return Unit.model_validate(rows[0])


class SupabaseListingRepository(_SupabaseRepository, ListingRepository):

    async def get(self, listing_id: str) -> Optional[Listing]:
        rows = await execute(
            self.table(LISTINGS_TABLE).select("*").eq("listing_id", listing_id).limit(1)
        )
        return Listing.model_validate(rows[0]) if rows else None

    async def get_by_unit(self, unit_id: str) -> Optional[Listing]:
        rows = await execute(self.table(LISTINGS_TABLE).select("*").eq("unit_id", unit_id).limit(1))
        return Listing.model_validate(rows[0]) if rows else None

    async def insert(self, listing: Listing) -> Listing:
        # unique(unit_id) on the table surfaces duplicates as 23505
        rows = await execute(self.table(LISTINGS_TABLE).insert(listing.model_dump(mode="json")))
        return Listing.model_validate(rows[0]) if rows else listing

    async def update(self, listing_id: str, changes: dict[str, Any]) -> Listing:
        payload = to_jsonable_python(changes)
        rows = await execute(
            self.table(LISTINGS_TABLE).update(payload).eq("listing_id", listing_id)
        )
        if not rows:
            raise not_found_error("Listing", listing_id)
        return Listing.model_validate(rows[0])

    async def delete(self, listing_id: str) -> None:
        await execute(self.table(LISTINGS_TABLE).delete().eq("listing_id", listing_id))

    async def list_by_status(self, statuses: Iterable[ListingStatus]) -> list[Listing]:
        values = [ListingStatus(s).value for s in statuses]
        rows = await execute(self.table(LISTINGS_TABLE).select("*").in_("status", values))
        return [Listing.model_validate(r) for r in rows]


class SupabaseAuditRepository(_SupabaseRepository, AuditRepository):
    """Audit rows are insert-only; the table grants no update or delete."""

    def _filtered(self, query, filter: AuditFilter):
        if filter.unit_id:
            query = query.eq("unit_id", filter.unit_id)
        if filter.listing_id:
            query = query.eq("listing_id", filter.listing_id)
        if filter.actor_id:
            query = query.eq("actor_id", filter.actor_id)
        if filter.action:
            query = query.eq("action", filter.action.value)
        if filter.status:
            query = query.eq("new_status", filter.status.value)
        if filter.date_from:
            query = query.gte("timestamp", filter.date_from.isoformat())
        if filter.date_to:
            query = query.lte("timestamp", filter.date_to.isoformat())
        return query

    async def append(self, entry: AuditEntry) -> AuditEntry:
        await execute(self.table(AUDIT_TABLE).insert(entry.model_dump(mode="json")))
        return entry

    async def query(self, filter: AuditFilter) -> list[AuditEntry]:
        query = self._filtered(self.table(AUDIT_TABLE).select("*"), filter)
        query = query.order("timestamp", desc=True).order("entry_id", desc=True)
        if filter.limit is not None:
            query = query.range(filter.offset, filter.offset + filter.limit - 1)
        elif filter.offset:
            query = query.offset(filter.offset)
        rows = await execute(query)
        return [AuditEntry.model_validate(r) for r in rows]

    async def count(self, filter: AuditFilter) -> int:
        query = self._filtered(self.table(AUDIT_TABLE).select("entry_id", count="exact"), filter)
        return await execute_count(query)

    async def latest_for_unit(self, unit_id: str) -> Optional[AuditEntry]:
        entries = await self.query(AuditFilter(unit_id=unit_id, limit=1))
        return entries[0] if entries else None
