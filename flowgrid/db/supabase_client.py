from __future__ import annotations

from supabase import Client, create_client

from ..config import require_supabase_env


def get_supabase_client() -> Client:
    url, key = require_supabase_env()
    return create_client(url, key)
