"""Supabase client singletons (service role for storage, anon for token checks)."""

from typing import Dict

from supabase import create_client, Client
from app.config import settings

_clients: Dict[str, Client] = {}


def get_supabase(role: str = "service") -> Client:
    """Get or create a Supabase client.

    role: "service" for the task table and collaborator tables,
          "anon" for verifying caller JWTs.
    """
    client = _clients.get(role)
    if client is not None:
        return client

    key = settings.supabase_service_role_key if role == "service" else settings.supabase_anon_key
    if not settings.supabase_url or not key:
        env_name = "SUPABASE_SERVICE_ROLE_KEY" if role == "service" else "SUPABASE_ANON_KEY"
        raise RuntimeError(f"SUPABASE_URL and {env_name} must be set")

    client = create_client(settings.supabase_url, key)
    _clients[role] = client
    return client
