"""
Listing state machine.

Creates, transitions and removes unit listings while enforcing the guards
that tie a listing to the rest of the unit's state: no listing goes ACTIVE
while the unit has an active lease, and maintenance mode restores exactly
the status it replaced. Every applied transition is written to the audit
trail; when the audit append fails the listing change is reverted so the
two never diverge.
"""

import re
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from src.models.audit import AuditAction
from src.models.listing import (
    Listing,
    ListingDecision,
    ListingPayload,
    ListingStatus,
    TransitionReport,
)
from src.models.maintenance import MaintenanceModeConfig, MaintenanceModeStatus
from src.models.unit import Property, Unit
from src.repositories.base import ListingRepository, UnitRepository
from src.services.audit_service import AuditService
from src.services.error_handler import ErrorHandler
from src.utils.cache import TTLCache
from src.utils.errors import (
    ListingError,
    conflict_error,
    not_found_error,
    validation_error,
)
from src.utils.ids import generate_listing_id
from src.utils.locks import KeyedLock
from src.utils.logging import get_structured_logger, log_timing, mask_user_id
from src.utils.settings import ListingSettings

logger = get_structured_logger(__name__)

SYSTEM_ACTOR = "system"

E = TypeVar("E", bound=Enum)

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_text(text: str) -> str:
    """Strip markup that could be rendered as script by a listing page."""
    if not text:
        return ""
    text = _ANGLE_BRACKETS.sub("", text.strip())
    text = _JS_PROTOCOL.sub("", text)
    text = _EVENT_HANDLER.sub("", text)
    return text[:1000]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return _as_utc(datetime.fromisoformat(value))


def _coerce(enum_type: type[E], value: Any, code: str) -> E:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise validation_error(
            f"Invalid {enum_type.__name__}: {value!r} (expected one of {allowed})",
            code=code,
            value=str(value),
        ) from None


def default_title(unit: Unit) -> str:
    details = []
    if unit.bedrooms:
        details.append(f"{unit.bedrooms}BR")
    if unit.bathrooms:
        details.append(f"{unit.bathrooms:g}BA")
    unit_label = unit.unit_number or "Unit"
    return f"{unit_label} - {'/'.join(details)}" if details else unit_label


def default_description(unit: Unit, prop: Optional[Property] = None) -> str:
    parts = []
    if unit.bedrooms:
        parts.append(f"{unit.bedrooms} bedroom{'s' if unit.bedrooms > 1 else ''}")
    if unit.bathrooms:
        parts.append(f"{unit.bathrooms:g} bathroom{'s' if unit.bathrooms > 1 else ''}")
    if unit.square_footage:
        parts.append(f"{unit.square_footage} sq ft")

    if parts:
        base = f"Spacious {', '.join(parts)} unit available for rent"
    else:
        base = "Quality rental unit available"
    if prop is not None and prop.name:
        base = f"{base} at {prop.name}"
    return f"{base}. Contact us for more details and to schedule a viewing."


class ListingService:
    """Single-unit listing operations."""

    def __init__(
        self,
        unit_repository: UnitRepository,
        listing_repository: ListingRepository,
        audit_service: AuditService,
        error_handler: Optional[ErrorHandler] = None,
        property_cache: Optional[TTLCache] = None,
    ):
        self.units = unit_repository
        self.listings = listing_repository
        self.audit = audit_service
        self.error_handler = error_handler or ErrorHandler()
        self.property_cache = property_cache or TTLCache(ListingSettings.PROPERTY_CACHE_TTL_SECONDS)
        self._unit_locks = KeyedLock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(self, operation: str, unit_id: str, **context: Any):
        """Serialize work on one unit and surface failures as ListingError."""
        async with self._unit_locks.hold(unit_id):
            try:
                with log_timing(operation, logger, unit_id=unit_id, **context):
                    yield
            except ListingError as e:
                self.error_handler.log_error(e, {"operation": operation, "unit_id": unit_id})
                raise
            except Exception as e:
                error = self.error_handler.normalize_error(e, {"operation": operation, "unit_id": unit_id})
                self.error_handler.log_error(error)
                raise error from e

    async def _read(self, fetch: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Idempotent lookups are retried on transient failures."""
        return await self.error_handler.with_retry(
            lambda: fetch(*args),
            {"operation": fetch.__name__},
        )

    async def _record_or_revert(self, revert: Callable[[], Awaitable[Any]], **entry: Any):
        try:
            return await self.audit.record(**entry)
        except Exception:
            logger.error(
                "Audit append failed, reverting listing change",
                exc_info=True,
                unit_id=entry.get("unit_id"),
                action=entry["action"].value,
            )
            await revert()
            raise

    async def _require_no_active_lease(self, unit_id: str, operation: str) -> None:
        lease = await self._read(self.units.get_active_lease, unit_id)
        if lease is not None:
            raise conflict_error(
                operation,
                "unit has an active lease",
                "no active lease",
                code="ACTIVE_LEASE",
            )

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_property(self, property_id: str) -> Optional[Property]:
        """Property lookup through the advisory cache."""
        key = f"property:{property_id}"
        cached = self.property_cache.get(key)
        if cached is not None:
            return cached
        prop = await self._read(self.units.get_property, property_id)
        if prop is not None:
            self.property_cache.set(key, prop)
        return prop

    async def get_unit(self, unit_id: str) -> Optional[Unit]:
        return await self._read(self.units.get_unit, unit_id)

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        return await self._read(self.listings.get, listing_id)

    async def get_listing_for_unit(self, unit_id: str) -> Optional[Listing]:
        return await self._read(self.listings.get_by_unit, unit_id)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _text_errors(self, field: str, value: Optional[str], min_len: int, max_len: int) -> list[str]:
        label = field.capitalize()
        if not value or not value.strip():
            return [f"{label} is required"]
        length = len(value.strip())
        if length < min_len:
            return [f"{label} must be at least {min_len} characters long"]
        if length > max_len:
            return [f"{label} must be less than {max_len} characters"]
        return []

    def _price_errors(self, price: Optional[Decimal]) -> list[str]:
        if price is None:
            return ["Price is required"]
        if price <= 0:
            return ["Price must be a positive number"]
        if price > Decimal(ListingSettings.LISTING_MAX_PRICE):
            return ["Price seems unusually high, please verify"]
        return []

    def _validate_new_listing(
        self,
        payload: ListingPayload,
        unit: Unit,
        prop: Optional[Property],
        now: datetime,
    ) -> dict[str, Any]:
        """Apply defaults and validate a creation payload."""
        title = payload.title.strip() if payload.title and payload.title.strip() else default_title(unit)
        description = (
            payload.description.strip()
            if payload.description and payload.description.strip()
            else default_description(unit, prop)
        )
        if payload.price is not None:
            price = payload.price
        elif unit.rent_amount and unit.rent_amount > 0:
            price = unit.rent_amount
        else:
            price = Decimal(ListingSettings.LISTING_FALLBACK_PRICE)

        availability_date = _as_utc(payload.availability_date) or now
        expiration_date = _as_utc(payload.expiration_date)

        errors = self._text_errors("title", title, 3, 100)
        errors += self._text_errors("description", description, 10, 1000)
        errors += self._price_errors(price)

        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        if availability_date < start_of_today:
            errors.append("Availability date cannot be in the past")
        if expiration_date is not None and expiration_date <= availability_date:
            errors.append("Expiration date must be after availability date")

        if errors:
            raise validation_error(
                f"Invalid listing data: {'; '.join(errors)}",
                code="INVALID_LISTING_DATA",
                errors=errors,
            )

        return {
            "title": sanitize_text(title),
            "description": sanitize_text(description),
            "price": price,
            "availability_date": availability_date,
            "expiration_date": expiration_date,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_listing(
        self,
        unit_id: str,
        payload: Optional[ListingPayload],
        actor_id: str,
        organization_id: Optional[str] = None,
        audit_action: AuditAction = AuditAction.LISTING_CREATED,
    ) -> Listing:
        """
        List a unit on the marketplace.

        Raises VALIDATION when the unit does not exist or the payload is
        invalid, CONFLICT when the unit already has a listing or an active
        lease. Starts COMING_SOON when the availability date is in the future.
        """
        async with self._operation("create_listing", unit_id, actor_id=mask_user_id(actor_id)):
            return await self._create_listing(unit_id, payload or ListingPayload(), actor_id, organization_id, audit_action)

    async def _create_listing(
        self,
        unit_id: str,
        payload: ListingPayload,
        actor_id: str,
        organization_id: Optional[str],
        audit_action: AuditAction,
    ) -> Listing:
        unit = await self.get_unit(unit_id)
        if unit is None:
            raise validation_error(f"Unit not found: {unit_id}", code="UNIT_NOT_FOUND", unit_id=unit_id)

        existing = await self.get_listing_for_unit(unit_id)
        if existing is not None:
            raise conflict_error(
                "create listing",
                f"unit already has a listing ({existing.status.value})",
                "unit without listing",
                code="LISTING_EXISTS",
            )

        await self._require_no_active_lease(unit_id, "create listing")

        prop = await self.get_property(unit.property_id)
        now = self._now()
        fields = self._validate_new_listing(payload, unit, prop, now)
        status = ListingStatus.COMING_SOON if fields["availability_date"] > now else ListingStatus.ACTIVE

        listing = Listing(
            listing_id=generate_listing_id(),
            unit_id=unit_id,
            organization_id=organization_id or (prop.organization_id if prop else None),
            status=status,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        listing = await self.listings.insert(listing)
        await self.units.set_unit_listing(unit_id, listing.listing_id)

        async def revert():
            await self.listings.delete(listing.listing_id)
            await self.units.set_unit_listing(unit_id, None)

        await self._record_or_revert(
            revert,
            unit_id=unit_id,
            listing_id=listing.listing_id,
            action=audit_action,
            previous_status=ListingStatus.PRIVATE,
            new_status=status,
            actor_id=actor_id,
            reason=payload.reason,
            changes={
                "title": listing.title,
                "price": str(listing.price),
                "availability_date": _iso(listing.availability_date),
                "expiration_date": _iso(listing.expiration_date),
            },
        )

        logger.info(
            "Listing created",
            listing_id=listing.listing_id,
            unit_id=unit_id,
            status=status.value,
        )
        return listing

    async def update_listing_status(
        self,
        listing_id: str,
        new_status: ListingStatus,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> Listing:
        """
        Move a listing to ``new_status``.

        Re-applying the current status is a successful no-op and writes no
        audit entry. MAINTENANCE is entered and left only through the
        maintenance mode operations.
        """
        new_status = _coerce(ListingStatus, new_status, "INVALID_STATUS")
        listing = await self.get_listing(listing_id)
        if listing is None:
            raise not_found_error("Listing", listing_id)

        async with self._operation("update_listing_status", listing.unit_id, listing_id=listing_id):
            return await self._update_listing_status(listing_id, new_status, actor_id, reason)

    async def _update_listing_status(
        self,
        listing_id: str,
        new_status: ListingStatus,
        actor_id: str,
        reason: Optional[str],
        action: AuditAction = AuditAction.STATUS_CHANGED,
    ) -> Listing:
        listing = await self.get_listing(listing_id)
        if listing is None:
            raise not_found_error("Listing", listing_id)

        current = listing.status
        if new_status == current:
            logger.debug("Listing already in requested status", listing_id=listing_id, status=current.value)
            return listing

        if ListingStatus.MAINTENANCE in (current, new_status):
            raise conflict_error(
                f"change status from {current.value} to {new_status.value}",
                "maintenance transitions are managed by maintenance mode",
                "start or end maintenance mode",
                code="MAINTENANCE_MODE_REQUIRED",
            )

        if new_status == ListingStatus.ACTIVE:
            await self._require_no_active_lease(listing.unit_id, "activate listing")

        updated = await self.listings.update(
            listing_id,
            {"status": new_status, "updated_at": self._now()},
        )

        async def revert():
            await self.listings.update(listing_id, {"status": current})

        await self._record_or_revert(
            revert,
            unit_id=listing.unit_id,
            listing_id=listing_id,
            action=action,
            previous_status=current,
            new_status=new_status,
            actor_id=actor_id,
            reason=reason,
        )
        return updated

    async def remove_listing(self, unit_id: str, actor_id: str, reason: Optional[str] = None) -> Unit:
        """
        Take a unit off the marketplace.

        A unit without a listing is returned unchanged; no audit entry is
        written for it.
        """
        async with self._operation("remove_listing", unit_id, actor_id=mask_user_id(actor_id)):
            unit = await self.get_unit(unit_id)
            if unit is None:
                raise not_found_error("Unit", unit_id)

            listing = await self.get_listing_for_unit(unit_id)
            if listing is None:
                if unit.listing_id is not None:
                    unit = await self.units.set_unit_listing(unit_id, None)
                logger.debug("Unit has no listing to remove", unit_id=unit_id)
                return unit

            await self.listings.delete(listing.listing_id)
            unit = await self.units.set_unit_listing(unit_id, None)

            async def revert():
                await self.listings.insert(listing)
                await self.units.set_unit_listing(unit_id, listing.listing_id)

            await self._record_or_revert(
                revert,
                unit_id=unit_id,
                listing_id=listing.listing_id,
                action=AuditAction.LISTING_REMOVED,
                previous_status=listing.status,
                new_status=ListingStatus.PRIVATE,
                actor_id=actor_id,
                reason=reason,
                changes={"title": listing.title},
            )

            logger.info("Listing removed", listing_id=listing.listing_id, unit_id=unit_id)
            return unit

    async def restore_listing(self, listing: Listing, actor_id: str, reason: Optional[str] = None) -> Listing:
        """
        Put a removed listing back on its unit, keeping its id and status.

        Raises CONFLICT when the unit has gained another listing since, or
        when an ACTIVE listing would return to a unit with an active lease.
        """
        unit_id = listing.unit_id
        async with self._operation("restore_listing", unit_id, listing_id=listing.listing_id):
            unit = await self.get_unit(unit_id)
            if unit is None:
                raise not_found_error("Unit", unit_id)

            existing = await self.get_listing_for_unit(unit_id)
            if existing is not None:
                raise conflict_error(
                    "restore listing",
                    f"unit already has a listing ({existing.status.value})",
                    "unit without listing",
                    code="LISTING_EXISTS",
                )
            if listing.status == ListingStatus.ACTIVE:
                await self._require_no_active_lease(unit_id, "restore listing")

            restored = await self.listings.insert(listing.model_copy(update={"updated_at": self._now()}))
            await self.units.set_unit_listing(unit_id, restored.listing_id)

            async def revert():
                await self.listings.delete(restored.listing_id)
                await self.units.set_unit_listing(unit_id, None)

            await self._record_or_revert(
                revert,
                unit_id=unit_id,
                listing_id=restored.listing_id,
                action=AuditAction.LISTING_RESTORED,
                previous_status=ListingStatus.PRIVATE,
                new_status=restored.status,
                actor_id=actor_id,
                reason=reason,
                changes={"title": restored.title},
            )

            logger.info("Listing restored", listing_id=restored.listing_id, unit_id=unit_id, status=restored.status.value)
            return restored

    # ------------------------------------------------------------------
    # Maintenance mode
    # ------------------------------------------------------------------

    async def start_maintenance_mode(self, config: MaintenanceModeConfig, actor_id: str) -> Listing:
        """Hide a listing for maintenance, remembering the status it had."""
        unit_id = config.unit_id
        async with self._operation("start_maintenance_mode", unit_id, maintenance_request_id=config.maintenance_request_id):
            listing = await self.get_listing_for_unit(unit_id)
            if listing is None:
                raise not_found_error("Listing", unit_id)

            if listing.status == ListingStatus.MAINTENANCE:
                logger.debug("Unit already in maintenance mode", unit_id=unit_id)
                return listing

            previous = listing.status
            updated = await self.listings.update(
                listing.listing_id,
                {"status": ListingStatus.MAINTENANCE, "updated_at": self._now()},
            )

            async def revert():
                await self.listings.update(listing.listing_id, {"status": previous})

            await self._record_or_revert(
                revert,
                unit_id=unit_id,
                listing_id=listing.listing_id,
                action=AuditAction.MAINTENANCE_STARTED,
                previous_status=previous,
                new_status=ListingStatus.MAINTENANCE,
                actor_id=actor_id,
                reason=config.reason,
                changes={
                    "previous_status": previous.value,
                    "maintenance_request_id": config.maintenance_request_id,
                    "start_date": _iso(_as_utc(config.start_date)),
                    "estimated_end_date": _iso(_as_utc(config.estimated_end_date)),
                    "notify_tenants": config.notify_tenants,
                    "auto_restore": config.auto_restore,
                },
            )

            if config.notify_tenants:
                logger.info(
                    "Tenant notification requested for maintenance",
                    unit_id=unit_id,
                    maintenance_request_id=config.maintenance_request_id,
                    estimated_end_date=_iso(config.estimated_end_date),
                )
            return updated

    async def end_maintenance_mode(
        self,
        unit_id: str,
        actor_id: str,
        restore_status: Optional[ListingStatus] = None,
        reason: Optional[str] = None,
    ) -> Listing:
        """
        Leave maintenance mode.

        Without ``restore_status`` the listing returns to the status captured
        when maintenance started. A listing not in maintenance is returned
        unchanged.
        """
        async with self._operation("end_maintenance_mode", unit_id):
            listing = await self.get_listing_for_unit(unit_id)
            if listing is None:
                raise not_found_error("Listing", unit_id)

            if listing.status != ListingStatus.MAINTENANCE:
                logger.debug("Unit not in maintenance mode", unit_id=unit_id, status=listing.status.value)
                return listing

            started = await self.audit.latest_action(unit_id, AuditAction.MAINTENANCE_STARTED)
            captured = started.changes.get("previous_status") if started else None

            if restore_status is not None:
                target = _coerce(ListingStatus, restore_status, "INVALID_RESTORE_STATUS")
            elif captured:
                target = ListingStatus(captured)
            else:
                logger.warning("No captured pre-maintenance status, restoring ACTIVE", unit_id=unit_id)
                target = ListingStatus.ACTIVE

            if target == ListingStatus.MAINTENANCE:
                raise validation_error(
                    "Cannot restore a listing to MAINTENANCE",
                    code="INVALID_RESTORE_STATUS",
                    unit_id=unit_id,
                )
            if target == ListingStatus.ACTIVE:
                await self._require_no_active_lease(unit_id, "restore listing to ACTIVE")

            updated = await self.listings.update(
                listing.listing_id,
                {"status": target, "updated_at": self._now()},
            )

            async def revert():
                await self.listings.update(listing.listing_id, {"status": ListingStatus.MAINTENANCE})

            await self._record_or_revert(
                revert,
                unit_id=unit_id,
                listing_id=listing.listing_id,
                action=AuditAction.MAINTENANCE_ENDED,
                previous_status=ListingStatus.MAINTENANCE,
                new_status=target,
                actor_id=actor_id,
                reason=reason or "Maintenance completed",
                changes={
                    "restored_status": target.value,
                    "maintenance_request_id": started.changes.get("maintenance_request_id") if started else None,
                },
            )
            return updated

    async def maintenance_mode_status(self, unit_id: str) -> MaintenanceModeStatus:
        """Maintenance state of a unit, derived from its audit trail."""
        listing = await self.get_listing_for_unit(unit_id)
        if listing is None or listing.status != ListingStatus.MAINTENANCE:
            return MaintenanceModeStatus(is_in_maintenance=False)

        started = await self.audit.latest_action(unit_id, AuditAction.MAINTENANCE_STARTED)
        if started is None:
            return MaintenanceModeStatus(is_in_maintenance=True)

        changes = started.changes
        previous = changes.get("previous_status")
        return MaintenanceModeStatus(
            is_in_maintenance=True,
            maintenance_request_id=changes.get("maintenance_request_id"),
            start_date=_parse_iso(changes.get("start_date")) or started.timestamp,
            estimated_end_date=_parse_iso(changes.get("estimated_end_date")),
            reason=started.reason,
            previous_status=ListingStatus(previous) if previous else None,
            can_restore=previous is not None,
        )

    # ------------------------------------------------------------------
    # Listing maintenance
    # ------------------------------------------------------------------

    async def update_listing_information(
        self,
        listing_id: str,
        payload: ListingPayload,
        actor_id: str,
    ) -> Listing:
        """Edit title, description or price; status is left alone."""
        listing = await self.get_listing(listing_id)
        if listing is None:
            raise not_found_error("Listing", listing_id)

        async with self._operation("update_listing_information", listing.unit_id, listing_id=listing_id):
            listing = await self.get_listing(listing_id)
            if listing is None:
                raise not_found_error("Listing", listing_id)

            errors = []
            proposed: dict[str, Any] = {}
            if payload.title is not None:
                errors += self._text_errors("title", payload.title, 3, 100)
                proposed["title"] = sanitize_text(payload.title)
            if payload.description is not None:
                errors += self._text_errors("description", payload.description, 10, 1000)
                proposed["description"] = sanitize_text(payload.description)
            if payload.price is not None:
                errors += self._price_errors(payload.price)
                proposed["price"] = payload.price
            if errors:
                raise validation_error(
                    f"Invalid listing data: {'; '.join(errors)}",
                    code="INVALID_LISTING_DATA",
                    errors=errors,
                )

            changes = {}
            for field, value in proposed.items():
                current = getattr(listing, field)
                if current != value:
                    changes[field] = {"from": str(current), "to": str(value)}
            if not changes:
                return listing

            updates = {field: proposed[field] for field in changes}
            updated = await self.listings.update(listing_id, {**updates, "updated_at": self._now()})

            async def revert():
                await self.listings.update(listing_id, {f: getattr(listing, f) for f in changes})

            await self._record_or_revert(
                revert,
                unit_id=listing.unit_id,
                listing_id=listing_id,
                action=AuditAction.LISTING_UPDATED,
                previous_status=listing.status,
                new_status=listing.status,
                actor_id=actor_id,
                reason="Listing information updated",
                changes=changes,
            )
            return updated

    async def process_time_based_transitions(self, now: Optional[datetime] = None) -> TransitionReport:
        """
        Activate COMING_SOON listings that have become available and expire
        ACTIVE/SUSPENDED listings past their expiration date.

        Per-listing failures are collected in the report.
        """
        now = _as_utc(now) or self._now()
        report = TransitionReport()

        coming_soon = await self._read(self.listings.list_by_status, [ListingStatus.COMING_SOON])
        for listing in coming_soon:
            if listing.availability_date > now:
                continue
            report.processed += 1
            try:
                async with self._operation("auto_activate_listing", listing.unit_id, listing_id=listing.listing_id):
                    await self._update_listing_status(
                        listing.listing_id,
                        ListingStatus.ACTIVE,
                        SYSTEM_ACTOR,
                        "Availability date reached",
                        action=AuditAction.LISTING_AUTO_ACTIVATED,
                    )
                report.activated += 1
            except ListingError as e:
                report.errors.append(f"Failed to activate listing {listing.listing_id}: {e.message}")

        expirable = await self._read(
            self.listings.list_by_status,
            [ListingStatus.ACTIVE, ListingStatus.SUSPENDED],
        )
        for listing in expirable:
            if listing.expiration_date is None or listing.expiration_date > now:
                continue
            report.processed += 1
            try:
                async with self._operation("auto_expire_listing", listing.unit_id, listing_id=listing.listing_id):
                    await self._update_listing_status(
                        listing.listing_id,
                        ListingStatus.EXPIRED,
                        SYSTEM_ACTOR,
                        "Listing expiration date reached",
                        action=AuditAction.LISTING_AUTO_EXPIRED,
                    )
                report.expired += 1
            except ListingError as e:
                report.errors.append(f"Failed to expire listing {listing.listing_id}: {e.message}")

        logger.info(
            "Time-based listing transitions processed",
            processed=report.processed,
            activated=report.activated,
            expired=report.expired,
            error_count=len(report.errors),
        )
        return report

    async def get_expiring_soon_listings(self, days_ahead: int = 7, now: Optional[datetime] = None) -> list[Listing]:
        """ACTIVE listings expiring within ``days_ahead`` days, soonest first."""
        now = _as_utc(now) or self._now()
        horizon = now + timedelta(days=days_ahead)
        active = await self._read(self.listings.list_by_status, [ListingStatus.ACTIVE])
        expiring = [
            listing for listing in active
            if listing.expiration_date is not None and now < listing.expiration_date <= horizon
        ]
        return sorted(expiring, key=lambda listing: listing.expiration_date)

    async def extend_listing_expiration(
        self,
        listing_id: str,
        new_expiration_date: datetime,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> Listing:
        listing = await self.get_listing(listing_id)
        if listing is None:
            raise not_found_error("Listing", listing_id)

        new_expiration_date = _as_utc(new_expiration_date)
        if new_expiration_date <= self._now():
            raise validation_error("New expiration date must be in the future", code="INVALID_EXPIRATION_DATE")
        if new_expiration_date <= listing.availability_date:
            raise validation_error(
                "Expiration date must be after availability date",
                code="INVALID_EXPIRATION_DATE",
            )

        async with self._operation("extend_listing_expiration", listing.unit_id, listing_id=listing_id):
            previous_expiration = listing.expiration_date
            updated = await self.listings.update(
                listing_id,
                {"expiration_date": new_expiration_date, "updated_at": self._now()},
            )

            async def revert():
                await self.listings.update(listing_id, {"expiration_date": previous_expiration})

            await self._record_or_revert(
                revert,
                unit_id=listing.unit_id,
                listing_id=listing_id,
                action=AuditAction.EXPIRATION_EXTENDED,
                previous_status=listing.status,
                new_status=listing.status,
                actor_id=actor_id,
                reason=reason or "Expiration date extended",
                changes={
                    "previous_expiration_date": _iso(previous_expiration),
                    "new_expiration_date": _iso(new_expiration_date),
                },
            )
            return updated

    async def apply_listing_decision(
        self,
        unit_id: str,
        decision: ListingDecision,
        actor_id: str,
        payload: Optional[ListingPayload] = None,
    ) -> Optional[Listing]:
        """
        Record a manager's decision for a unit whose lease has ended.

        LIST_UNIT creates the listing; KEEP_PRIVATE removes any listing the
        unit still has. Returns the listing for LIST_UNIT, otherwise None.
        """
        decision = _coerce(ListingDecision, decision, "INVALID_DECISION")
        unit = await self.get_unit(unit_id)
        if unit is None:
            raise not_found_error("Unit", unit_id)

        listing = None
        if decision == ListingDecision.LIST_UNIT:
            listing = await self.create_listing(unit_id, payload, actor_id)
            new_status = listing.status
            action = AuditAction.LISTING_DECISION_LIST_UNIT
        else:
            await self.remove_listing(unit_id, actor_id, reason="Kept private after lease ended")
            new_status = ListingStatus.PRIVATE
            action = AuditAction.LISTING_DECISION_KEEP_PRIVATE

        await self.audit.record(
            unit_id=unit_id,
            listing_id=listing.listing_id if listing else None,
            action=action,
            previous_status=ListingStatus.PRIVATE,
            new_status=new_status,
            actor_id=actor_id,
            reason=payload.reason if payload else None,
            changes={"decision": decision.value},
        )
        return listing
