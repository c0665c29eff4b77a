# flowgrid/config.py
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()  # loads .env if present; never overrides exported vars

SUPABASE_URL = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = (
    os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    or os.getenv("SUPABASE_SERVICE_KEY")
    or os.getenv("SUPABASE_ANON_KEY")
    or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY")
)

LOG_LEVEL = os.getenv("FLOWGRID_LOG_LEVEL", "INFO").upper()
HTTP_TIMEOUT_S = int(os.getenv("FLOWGRID_HTTP_TIMEOUT_S", "30"))


def require_supabase_env() -> tuple[str, str]:
    """Return (url, key) or fail fast naming what is missing."""
    missing = []
    if not SUPABASE_URL:
        missing.append("SUPABASE_URL")
    if not SUPABASE_SERVICE_ROLE_KEY:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing)}. "
            "Copy .env.example to .env and fill in your Supabase credentials."
        )
    return SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY  # type: ignore[return-value]
