"""
Planwell - Supabase Client.

Low-level database access for counters and payment records.
"""

from supabase import Client, create_client

from planwell.config import settings

# Singleton client instance
_client: Client | None = None


def get_client() -> Client:
    """
    Get the Supabase client.

    Uses singleton pattern to reuse connection. Uses the service role key:
    counters and payment records are written on the user's behalf.
    """
    global _client

    if _client is None:
        _client = create_client(
            settings.require("supabase_url"),
            settings.require("supabase_service_role_key"),
        )

    return _client


def reset_client() -> None:
    """Drop the cached client (tests, credential rotation)."""
    global _client
    _client = None
