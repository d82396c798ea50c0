"""
Error classification and retry with exponential backoff.

Every failure leaving the listing core passes through ``ErrorHandler``:
persistence, transport and validation errors are normalized into a
``ListingError`` so callers can branch on ``error.type`` and transports can
render a stable status code.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError

from src.utils.errors import ErrorSeverity, ListingError, ListingErrorType
from src.utils.logging import get_structured_logger
from src.utils.settings import ListingSettings

logger = get_structured_logger(__name__)

T = TypeVar("T")

HTTP_STATUS_BY_TYPE = {
    ListingErrorType.VALIDATION: 400,
    ListingErrorType.PERMISSION: 403,
    ListingErrorType.NOT_FOUND: 404,
    ListingErrorType.CONFLICT: 409,
    ListingErrorType.RATE_LIMIT: 429,
    ListingErrorType.NETWORK: 502,
    ListingErrorType.DATABASE: 503,
    ListingErrorType.EXTERNAL_SERVICE: 503,
    ListingErrorType.UNKNOWN: 500,
}


@dataclass
class RetryConfig:
    """Backoff policy for ``ErrorHandler.with_retry``."""
    max_attempts: int = ListingSettings.RETRY_MAX_ATTEMPTS
    base_delay_ms: int = ListingSettings.RETRY_BASE_DELAY_MS
    max_delay_ms: int = ListingSettings.RETRY_MAX_DELAY_MS
    backoff_multiplier: float = ListingSettings.RETRY_BACKOFF_MULTIPLIER
    retryable_errors: frozenset = field(default_factory=lambda: frozenset({
        ListingErrorType.DATABASE,
        ListingErrorType.NETWORK,
        ListingErrorType.EXTERNAL_SERVICE,
    }))

    def delay_ms(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        delay = self.base_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_ms)


class ErrorHandler:
    """Normalizes, logs and retries listing operation failures."""

    def __init__(self, retry_config: Optional[RetryConfig] = None):
        self.retry_config = retry_config or RetryConfig()

    def normalize_error(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> ListingError:
        """Turn any exception into a ``ListingError``."""
        if isinstance(error, ListingError):
            return error

        details = {"original_error": type(error).__name__, **(context or {})}

        if isinstance(error, APIError):
            return self._from_postgrest(error, details)

        if isinstance(error, httpx.HTTPStatusError):
            return self._from_http_status(error, details)

        if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError)):
            return ListingError(
                ListingErrorType.NETWORK,
                f"Network error: {error}",
                severity=ErrorSeverity.MEDIUM,
                code="NETWORK_ERROR",
                technical_details=details,
            )

        if isinstance(error, ValidationError):
            messages = "; ".join(
                f"{'.'.join(str(p) for p in e['loc']) or 'value'}: {e['msg']}" for e in error.errors()
            )
            return ListingError(
                ListingErrorType.VALIDATION,
                f"Validation failed: {messages}",
                severity=ErrorSeverity.LOW,
                code="VALIDATION_FAILED",
                retryable=False,
                technical_details=details,
            )

        if isinstance(error, ValueError):
            return ListingError(
                ListingErrorType.VALIDATION,
                str(error),
                severity=ErrorSeverity.LOW,
                code="VALIDATION_FAILED",
                retryable=False,
                technical_details=details,
            )

        return ListingError(
            ListingErrorType.UNKNOWN,
            str(error) or type(error).__name__,
            severity=ErrorSeverity.HIGH,
            code="UNKNOWN_ERROR",
            retryable=False,
            technical_details=details,
        )

    def _from_postgrest(self, error: APIError, details: dict[str, Any]) -> ListingError:
        code = str(error.code or "")
        details = {**details, "db_code": code, "db_details": error.details, "db_hint": error.hint}

        if code == "23505":
            return ListingError(
                ListingErrorType.CONFLICT,
                f"Duplicate record: {error.message}",
                code="DUPLICATE_RECORD",
                user_message="This record already exists. Please refresh and try again.",
                retryable=False,
                technical_details=details,
            )
        if code == "23503":
            return ListingError(
                ListingErrorType.VALIDATION,
                f"Referenced record does not exist: {error.message}",
                severity=ErrorSeverity.LOW,
                code="FOREIGN_KEY_VIOLATION",
                retryable=False,
                technical_details=details,
            )
        if code == "PGRST116":
            return ListingError(
                ListingErrorType.NOT_FOUND,
                f"Record not found: {error.message}",
                severity=ErrorSeverity.LOW,
                code="RECORD_NOT_FOUND",
                retryable=False,
                technical_details=details,
            )
        if code.startswith("08"):
            return ListingError(
                ListingErrorType.DATABASE,
                f"Database connection error: {error.message}",
                severity=ErrorSeverity.HIGH,
                code="DATABASE_CONNECTION_ERROR",
                retryable=True,
                technical_details=details,
            )
        return ListingError(
            ListingErrorType.DATABASE,
            f"Database error: {error.message}",
            severity=ErrorSeverity.HIGH,
            code="DATABASE_ERROR",
            technical_details=details,
        )

    def _from_http_status(self, error: httpx.HTTPStatusError, details: dict[str, Any]) -> ListingError:
        status = error.response.status_code
        details = {**details, "status_code": status}

        if status == 429:
            return ListingError(
                ListingErrorType.RATE_LIMIT,
                "Rate limit exceeded",
                severity=ErrorSeverity.MEDIUM,
                code="RATE_LIMIT_EXCEEDED",
                retryable=False,
                technical_details=details,
            )
        if status >= 500:
            return ListingError(
                ListingErrorType.EXTERNAL_SERVICE,
                f"External service error: HTTP {status}",
                severity=ErrorSeverity.HIGH,
                code="EXTERNAL_SERVICE_ERROR",
                technical_details=details,
            )
        return ListingError(
            ListingErrorType.UNKNOWN,
            f"Unexpected HTTP {status}",
            severity=ErrorSeverity.MEDIUM,
            code="HTTP_ERROR",
            retryable=False,
            technical_details=details,
        )

    def log_error(self, error: ListingError, context: Optional[dict[str, Any]] = None) -> None:
        """Log at a level matching the error's severity."""
        fields = {**error.to_dict(), **(context or {})}
        fields.pop("message", None)
        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            logger.error(f"Listing error: {error.message}", **fields)
        elif error.severity == ErrorSeverity.MEDIUM:
            logger.warning(f"Listing warning: {error.message}", **fields)
        else:
            logger.info(f"Listing notice: {error.message}", **fields)

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[dict[str, Any]] = None,
        config: Optional[RetryConfig] = None,
    ) -> T:
        """
        Await ``operation`` until it succeeds or the retry budget is spent.

        Only errors that are flagged retryable and whose type is in
        ``config.retryable_errors`` are retried. The last classified error is
        raised.
        """
        config = config or self.retry_config
        attempt = 1

        while True:
            try:
                return await operation()
            except Exception as e:
                error = self.normalize_error(e, context)
                self.log_error(error, {**(context or {}), "attempt": attempt})

                should_retry = (
                    error.retryable
                    and error.type in config.retryable_errors
                    and attempt < config.max_attempts
                )
                if not should_retry:
                    raise error from (None if error is e else e)

                delay_ms = config.delay_ms(attempt)
                logger.info(
                    "Retrying listing operation",
                    attempt=attempt,
                    next_attempt=attempt + 1,
                    delay_ms=delay_ms,
                    error_type=error.type.value,
                )
                await asyncio.sleep(delay_ms / 1000)
                attempt += 1

    def http_status_for(self, error_type: ListingErrorType) -> int:
        return HTTP_STATUS_BY_TYPE.get(ListingErrorType(error_type), 500)

    def to_error_response(self, error: BaseException, debug: bool = False) -> dict[str, Any]:
        """Build a transport-neutral error response for HTTP handlers."""
        listing_error = self.normalize_error(error)
        body: dict[str, Any] = {
            "error": {
                "type": listing_error.type.value,
                "code": listing_error.code,
                "message": listing_error.user_message,
                "retryable": listing_error.retryable,
                "timestamp": listing_error.timestamp.isoformat(),
            }
        }
        if debug:
            body["error"]["technical_message"] = listing_error.message
            body["error"]["technical_details"] = listing_error.technical_details

        return {
            "statusCode": self.http_status_for(listing_error.type),
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(body, default=str),
        }
