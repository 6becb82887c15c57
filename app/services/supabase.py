"""Supabase admin client, used to invite new members by email."""

from functools import lru_cache

from supabase import Client, create_client

from app.config.settings import settings


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get the Supabase client authenticated with the service role key.

    Only for server-side admin calls (inviting users). Never expose it to
    the frontend.
    """
    if not settings.supabase_service_role_key:
        raise ValueError(
            "SUPABASE_SERVICE_ROLE_KEY not configured. Set it in .env to invite members."
        )

    return create_client(settings.supabase_url, settings.supabase_service_role_key)
