"""Supabase client singleton and query execution helper."""

import asyncio
import os
from typing import Any, Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.utils.errors import ListingError, ListingErrorType, ErrorSeverity
import logging

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise ListingError(
                ListingErrorType.DATABASE,
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set",
                severity=ErrorSeverity.CRITICAL,
                code="SUPABASE_NOT_CONFIGURED",
                retryable=False,
            )

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


async def close_supabase_client() -> None:
    """Drop the cached client; supabase-py has no explicit close."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


async def execute(query: Any) -> list[dict]:
    """
    Run a built PostgREST query off the event loop.

    supabase-py executes synchronously; raw client errors propagate so the
    error handler can classify them by code.
    """
    result = await asyncio.to_thread(query.execute)
    return result.data if result.data else []


async def execute_count(query: Any) -> int:
    """Run a ``count="exact"`` query and return the row count."""
    result = await asyncio.to_thread(query.execute)
    return result.count or 0
