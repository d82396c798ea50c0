"""
Bulk listing operations.

Applies independent per-unit actions, reports a success/failure breakdown and
undoes every change the batch applied when too many units fail.
"""

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from src.models.audit import AuditAction
from src.models.bulk import (
    BulkActionType,
    BulkFailure,
    BulkOperation,
    BulkOperationError,
    BulkResult,
    BulkSummary,
    BulkUpdateResult,
)
from src.models.listing import ListingStatus
from src.services.listing_service import ListingService
from src.utils.errors import ListingError, ListingErrorType, not_found_error, permission_error
from src.utils.logging import correlation_context, get_structured_logger, log_timing, mask_user_id
from src.utils.settings import ListingSettings

logger = get_structured_logger(__name__)

CANCELLED_MESSAGE = "Cancelled before processing"
ROLLBACK_REASON = "Rollback: Bulk operation failed"

REMOVAL_REASONS = {
    BulkActionType.UNLIST: "Bulk unlist operation",
    BulkActionType.SUSPEND: "Bulk suspend operation",
}

Compensation = Callable[[], Awaitable[Any]]


def _invalid_input(message: str, **details) -> ListingError:
    return ListingError(
        ListingErrorType.VALIDATION,
        message,
        code=BulkOperationError.INVALID_INPUT.value,
        retryable=False,
        technical_details=details,
    )


class BulkOperationService:
    """Drives the listing state machine over a batch of units."""

    def __init__(
        self,
        listing_service: ListingService,
        max_operations: int = ListingSettings.BULK_MAX_OPERATIONS,
        rollback_threshold: float = ListingSettings.BULK_ROLLBACK_THRESHOLD,
    ):
        self.listing_service = listing_service
        self.max_operations = max_operations
        self.rollback_threshold = rollback_threshold

    def validate_operations(self, operations: Optional[list[BulkOperation]]) -> None:
        """Raise INVALID_INPUT when the batch as a whole is malformed."""
        if not operations:
            raise _invalid_input("No operations provided")

        errors = []
        if len(operations) > self.max_operations:
            errors.append(f"Too many operations (maximum {self.max_operations})")

        seen = set()
        for index, operation in enumerate(operations):
            unit_id = (operation.unit_id or "").strip()
            if not unit_id:
                errors.append(f"Operation {index}: unit ID is required")
                continue
            if unit_id in seen:
                errors.append(f"Duplicate unit ID: {unit_id}")
            seen.add(unit_id)
            if operation.action == BulkActionType.LIST.value and operation.listing_data is None:
                errors.append(f"Listing data required for LIST operation on unit {unit_id}")

        if errors:
            raise _invalid_input(f"Validation errors: {', '.join(errors)}", errors=errors)

    async def bulk_update_listings(
        self,
        operations: list[BulkOperation],
        actor_id: str,
        organization_id: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BulkUpdateResult:
        """
        Apply each operation independently.

        Per-unit failures never abort the batch. When the failure rate reaches
        the rollback threshold every applied operation is undone, newest
        first, and the batch reports TRANSACTION_FAILED. A set ``cancel_event``
        stops processing between units; the remaining units are reported failed
        and already-applied operations are kept.
        """
        self.validate_operations(operations)

        total = len(operations)
        successful: list[str] = []
        failures: list[BulkFailure] = []
        applied: list[tuple[str, Compensation]] = []
        processed_failures = 0
        cancelled = False

        with correlation_context():
            with log_timing("bulk_update_listings", logger, operation_count=total, actor_id=mask_user_id(actor_id)):
                for operation in operations:
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        failures.append(BulkFailure(unit_id=operation.unit_id, error=CANCELLED_MESSAGE))
                        continue

                    try:
                        undo = await self._execute(operation, actor_id, organization_id)
                    except Exception as e:
                        message = e.message if isinstance(e, ListingError) else str(e) or type(e).__name__
                        failures.append(BulkFailure(unit_id=operation.unit_id, error=message))
                        processed_failures += 1
                        logger.warning(
                            "Bulk operation failed for unit",
                            unit_id=operation.unit_id,
                            bulk_action=operation.action,
                            error=message,
                        )
                        continue

                    successful.append(operation.unit_id)
                    if undo is not None:
                        applied.append((operation.unit_id, undo))

            result = BulkResult(
                successful=successful,
                failed=failures,
                summary=BulkSummary(total=total, succeeded=len(successful), failed=len(failures)),
                cancelled=cancelled,
            )

            failure_rate = processed_failures / total
            if processed_failures and failure_rate >= self.rollback_threshold:
                return await self._rollback(result, applied, processed_failures)

            logger.info(
                "Bulk operation completed",
                total=total,
                succeeded=result.summary.succeeded,
                failed=result.summary.failed,
                cancelled=cancelled,
                organization_id=organization_id,
                actor_id=mask_user_id(actor_id),
            )
            return BulkUpdateResult(success=True, data=result)

    async def _execute(self, operation: BulkOperation, actor_id: str, organization_id: str) -> Optional[Compensation]:
        """Apply one operation and return the call that undoes it, if it changed anything."""
        unit_id = operation.unit_id
        await self._authorize(unit_id, organization_id)

        if operation.action == BulkActionType.LIST.value:
            await self.listing_service.create_listing(
                unit_id,
                operation.listing_data,
                actor_id,
                organization_id=organization_id,
                audit_action=AuditAction.BULK_LISTING_CREATED,
            )
            return partial(self.listing_service.remove_listing, unit_id, actor_id, ROLLBACK_REASON)

        if operation.action in (BulkActionType.UNLIST.value, BulkActionType.SUSPEND.value):
            removed = await self.listing_service.get_listing_for_unit(unit_id)
            await self.listing_service.remove_listing(
                unit_id,
                actor_id,
                REMOVAL_REASONS[BulkActionType(operation.action)],
            )
            if removed is None:
                return None
            return partial(self.listing_service.restore_listing, removed, actor_id, ROLLBACK_REASON)

        if operation.action == BulkActionType.ACTIVATE.value:
            listing = await self.listing_service.get_listing_for_unit(unit_id)
            if listing is None:
                raise not_found_error("Listing", unit_id)
            await self.listing_service.update_listing_status(
                listing.listing_id,
                ListingStatus.ACTIVE,
                actor_id,
                "Bulk activate operation",
            )
            if listing.status == ListingStatus.ACTIVE:
                return None
            return partial(
                self.listing_service.update_listing_status,
                listing.listing_id,
                listing.status,
                actor_id,
                ROLLBACK_REASON,
            )

        raise ListingError(
            ListingErrorType.VALIDATION,
            f"{BulkOperationError.UNKNOWN_ACTION.value}: unknown operation {operation.action!r}",
            code=BulkOperationError.UNKNOWN_ACTION.value,
            retryable=False,
        )

    async def _authorize(self, unit_id: str, organization_id: str) -> None:
        unit = await self.listing_service.get_unit(unit_id)
        if unit is None:
            raise not_found_error("Unit", unit_id)
        prop = await self.listing_service.get_property(unit.property_id)
        if prop is None or prop.organization_id != organization_id:
            raise permission_error(f"modify unit {unit_id}", unit_id=unit_id)

    async def _rollback(
        self,
        result: BulkResult,
        applied: list[tuple[str, Compensation]],
        failed: int,
    ) -> BulkUpdateResult:
        total = result.summary.total
        logger.warning(
            "Bulk failure threshold reached, rolling back",
            failed_count=failed,
            total=total,
            compensation_count=len(applied),
        )

        rollback_failures = []
        for unit_id, undo in reversed(applied):
            try:
                await undo()
            except Exception as e:
                logger.error("Rollback failed for unit", exc_info=True, unit_id=unit_id, error=str(e))
                rollback_failures.append(unit_id)

        if rollback_failures:
            message = (
                "Bulk operation failed with high failure rate and rollback also failed. "
                f"Manual intervention may be required. Original failures: {failed}/{total}"
            )
        else:
            message = (
                f"Bulk operation rolled back due to high failure rate ({failed}/{total} failed). "
                "All changes have been reverted."
            )

        return BulkUpdateResult(
            success=False,
            data=result,
            error=BulkOperationError.TRANSACTION_FAILED,
            message=message,
            rollback_attempted=True,
            rollback_succeeded=not rollback_failures,
        )
