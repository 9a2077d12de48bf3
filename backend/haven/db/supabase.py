"""
Supabase Client
===============
Configured Supabase client for dependency injection into FastAPI
routes and into the domain stores' primary data sources.

Uses the service_role key because the endpoints write usage rows and
profile flags on behalf of authenticated users. That key bypasses RLS,
so every read filters by owner itself: ``user_id`` on most tables, ``id``
on profiles, and ``therapy_sessions.user_id`` through an inner join for
session goals.
"""

from functools import lru_cache

from supabase import Client, create_client

from haven.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)
