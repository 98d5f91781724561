"""Supabase client for the ledger and billing tables."""

from functools import lru_cache
from typing import Any

from supabase import Client, ClientOptions, create_client

from src.core.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Get the cached Supabase client.

    The secret key bypasses RLS, so every service query filters on
    ``shop_id`` itself. PostgREST calls time out after
    ``database_timeout_seconds`` so an unreachable database surfaces as a
    transport error instead of a hung request.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
        options=ClientOptions(postgrest_client_timeout=settings.database_timeout_seconds),
    )


async def check_database_connection(table: str | None = None) -> dict[str, Any]:
    """Probe one table with a single-row select.

    Args:
        table: Table to query; defaults to ``health_check_table``.

    Returns:
        dict: ``{"healthy": True}`` or ``{"healthy": False, "error": ...}``.
    """
    table = table or get_settings().health_check_table
    try:
        get_supabase_client().table(table).select("id").limit(1).execute()
    except Exception as e:
        return {"healthy": False, "error": f"{table}: {e}"}
    return {"healthy": True}
