"""Text identifiers (ULID format)."""

from ulid import ULID


def generate_listing_id() -> str:
    """Generate a text-based listing ID."""
    return str(ULID())


def generate_audit_entry_id() -> str:
    """Generate a text-based audit entry ID."""
    return str(ULID())
