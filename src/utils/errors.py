"""Error taxonomy for listing operations."""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Optional


class ListingErrorType(str, Enum):
    """Error categories surfaced by the listing core."""
    VALIDATION = "VALIDATION"
    PERMISSION = "PERMISSION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    DATABASE = "DATABASE"
    NETWORK = "NETWORK"
    RATE_LIMIT = "RATE_LIMIT"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    UNKNOWN = "UNKNOWN"


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


RETRYABLE_BY_DEFAULT = frozenset({
    ListingErrorType.DATABASE,
    ListingErrorType.NETWORK,
    ListingErrorType.EXTERNAL_SERVICE,
})

DEFAULT_USER_MESSAGES = {
    ListingErrorType.VALIDATION: "Please check your input and try again.",
    ListingErrorType.PERMISSION: "You do not have permission to perform this action.",
    ListingErrorType.NOT_FOUND: "The requested item could not be found.",
    ListingErrorType.CONFLICT: "This action conflicts with the current state. Please refresh and try again.",
    ListingErrorType.DATABASE: "A database error occurred. Please try again later.",
    ListingErrorType.NETWORK: "Network connection failed. Please check your connection and try again.",
    ListingErrorType.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    ListingErrorType.EXTERNAL_SERVICE: "An external service is temporarily unavailable. Please try again later.",
    ListingErrorType.UNKNOWN: "An unexpected error occurred. Please try again or contact support.",
}


class ListingError(Exception):
    """
    Single error type for the listing core.

    Callers branch on ``error.type`` rather than on exception subclasses.
    """

    def __init__(
        self,
        type: ListingErrorType,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        code: Optional[str] = None,
        user_message: Optional[str] = None,
        retryable: Optional[bool] = None,
        technical_details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.type = ListingErrorType(type)
        self.message = message
        self.severity = ErrorSeverity(severity)
        self.code = code or self.type.value
        self.user_message = user_message or DEFAULT_USER_MESSAGES[self.type]
        self.retryable = self.type in RETRYABLE_BY_DEFAULT if retryable is None else retryable
        self.technical_details = technical_details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and transport."""
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "technical_details": self.technical_details,
            "timestamp": self.timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        return f"ListingError(type={self.type.value}, code={self.code}, message={self.message!r})"


def validation_error(message: str, code: str = "VALIDATION_FAILED", **details: Any) -> ListingError:
    """Invalid input; never retried."""
    return ListingError(
        ListingErrorType.VALIDATION,
        message,
        severity=ErrorSeverity.LOW,
        code=code,
        retryable=False,
        technical_details=details,
    )


def not_found_error(resource_type: str, resource_id: str) -> ListingError:
    return ListingError(
        ListingErrorType.NOT_FOUND,
        f"{resource_type} not found: {resource_id}",
        severity=ErrorSeverity.LOW,
        code=f"{resource_type.upper()}_NOT_FOUND",
        user_message=f"The requested {resource_type.lower()} could not be found.",
        retryable=False,
        technical_details={"resource_type": resource_type, "resource_id": resource_id},
    )


def conflict_error(operation: str, current_state: str, required_state: str, code: str = "CONFLICT") -> ListingError:
    """State violation, e.g. creating a listing for a unit with an active lease."""
    return ListingError(
        ListingErrorType.CONFLICT,
        f"Cannot {operation}: {current_state} (required: {required_state})",
        severity=ErrorSeverity.MEDIUM,
        code=code,
        user_message="This action cannot be performed in the current state. Please refresh and try again.",
        retryable=False,
        technical_details={
            "operation": operation,
            "current_state": current_state,
            "required_state": required_state,
        },
    )


def permission_error(operation: str, **details: Any) -> ListingError:
    return ListingError(
        ListingErrorType.PERMISSION,
        f"Insufficient permissions for {operation}",
        severity=ErrorSeverity.MEDIUM,
        code="PERMISSION_DENIED",
        user_message=f"You do not have permission to {operation}. Please contact your administrator.",
        retryable=False,
        technical_details={"operation": operation, **details},
    )
