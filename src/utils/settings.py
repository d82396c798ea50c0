"""Environment-driven settings for the listing core."""

import os


DEFAULT_OFFLINE_KEYWORDS = (
    "offline",
    "unavailable",
    "not available",
    "out of service",
    "major repair",
    "renovation",
    "remodel",
    "flooring",
    "painting",
    "electrical work",
    "plumbing work",
    "hvac replacement",
    "appliance replacement",
    "kitchen",
    "bathroom",
    "water damage",
    "mold",
    "pest control",
    "fumigation",
    "inspection",
)


def _keywords_from_env() -> tuple[str, ...]:
    raw = os.environ.get("MAINTENANCE_OFFLINE_KEYWORDS", "")
    keywords = tuple(k.strip().lower() for k in raw.split(",") if k.strip())
    return keywords or DEFAULT_OFFLINE_KEYWORDS


class ListingSettings:
    """Centralized listing settings."""

    # Bulk operations
    BULK_MAX_OPERATIONS = int(os.environ.get("BULK_MAX_OPERATIONS", "50"))
    BULK_ROLLBACK_THRESHOLD = float(os.environ.get("BULK_ROLLBACK_THRESHOLD", "0.5"))

    # Retry/backoff
    RETRY_MAX_ATTEMPTS = int(os.environ.get("RETRY_MAX_ATTEMPTS", "3"))
    RETRY_BASE_DELAY_MS = int(os.environ.get("RETRY_BASE_DELAY_MS", "1000"))
    RETRY_MAX_DELAY_MS = int(os.environ.get("RETRY_MAX_DELAY_MS", "10000"))
    RETRY_BACKOFF_MULTIPLIER = float(os.environ.get("RETRY_BACKOFF_MULTIPLIER", "2"))

    # Listing validation
    LISTING_MAX_PRICE = int(os.environ.get("LISTING_MAX_PRICE", "50000"))
    LISTING_FALLBACK_PRICE = int(os.environ.get("LISTING_FALLBACK_PRICE", "1000"))

    # Advisory property cache
    PROPERTY_CACHE_TTL_SECONDS = int(os.environ.get("PROPERTY_CACHE_TTL_SECONDS", "300"))

    # Maintenance heuristics
    MAINTENANCE_OFFLINE_KEYWORDS = _keywords_from_env()
