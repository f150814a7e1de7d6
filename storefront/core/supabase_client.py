# storefront/core/supabase_client.py
import logging
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from storefront.core.config import Settings, get_settings
from storefront.core.errors import (
    CollectionError,
    NotFound,
    OwnershipViolation,
    StoreUnavailable,
)

logger = logging.getLogger(__name__)

# PostgREST / Postgres error codes we translate explicitly.
INSUFFICIENT_PRIVILEGE = "42501"
FOREIGN_KEY_VIOLATION = "23503"
NO_ROWS_FOR_SINGLE = "PGRST116"


async def supabase_public(settings: Settings | None = None) -> AsyncClient:
    """
    Create an async Supabase client with the anon/public key.

    The storefront always runs as the signed-in customer, so every
    request it makes is subject to row-level security.
    """
    settings = settings or get_settings()
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


def translate_api_error(exc: APIError, operation: str) -> CollectionError:
    """
    Map a PostgREST error onto the collection failure taxonomy.

      - 42501 (RLS / privilege)      -> OwnershipViolation
      - PGRST116, 23503              -> NotFound
      - anything else                -> StoreUnavailable
    """
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)

    if code == INSUFFICIENT_PRIVILEGE:
        return OwnershipViolation(message, operation=operation)
    if code in (NO_ROWS_FOR_SINGLE, FOREIGN_KEY_VIOLATION):
        return NotFound(message, operation=operation)
    return StoreUnavailable(message, operation=operation)


async def run_query(query: Any, *, operation: str) -> list[dict[str, Any]]:
    """
    Execute a prepared PostgREST request exactly once.

    No retries, no backoff. Library failures are re-raised as typed
    CollectionError subclasses.

    Returns:
        The response rows (empty list when the store returned nothing).
    """
    try:
        response = await query.execute()
    except APIError as exc:
        error = translate_api_error(exc, operation)
        logger.warning("Store rejected %s: %s", operation, error)
        raise error from exc
    except httpx.HTTPError as exc:
        logger.warning("Store unreachable during %s: %s", operation, exc)
        raise StoreUnavailable(str(exc), operation=operation) from exc

    if response is None or response.data is None:
        return []
    if isinstance(response.data, dict):
        return [response.data]
    return list(response.data)
