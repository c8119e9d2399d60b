"""
backend/factory.py -- Build the configured BackendClient and check its schema.

BACKEND=local     LocalBackend(DATABASE_URL); the schema must be at
                  migrations.LATEST_VERSION before requests are served.
BACKEND=supabase  SupabaseBackend(SUPABASE_URL, SUPABASE_ANON_KEY); the hosted
                  project owns its schema, nothing is checked here.
"""

from __future__ import annotations

import logging

from backend import migrations
from backend.client import BackendClient, BackendError
from backend.local import LocalBackend
from backend.supabase import SupabaseBackend
from core.config import Settings

logger = logging.getLogger("skillink.backend")


def create_backend(settings: Settings) -> BackendClient:
    if settings.backend == "supabase":
        logger.info("Using hosted backend at %s", settings.supabase_url)
        return SupabaseBackend(
            settings.supabase_url,
            settings.supabase_anon_key,
            timeout=settings.backend_timeout_seconds,
        )
    logger.info("Using local backend")
    return LocalBackend(settings.database_url)


def ensure_schema(backend: BackendClient, auto_migrate: bool = False) -> None:
    """Refuse to serve a local database whose schema is behind.

    Raises BackendError when migrations are pending and auto_migrate is off.
    """
    if not isinstance(backend, LocalBackend):
        return
    version = migrations.current_version(backend.engine)
    if version >= migrations.LATEST_VERSION:
        return
    if not auto_migrate:
        raise BackendError(
            f"Database schema is at version {version}, expected {migrations.LATEST_VERSION}. "
            "Run `python main.py migrate` (or set AUTO_MIGRATE=true for development)."
        )
    applied = migrations.upgrade(backend.engine)
    logger.warning("AUTO_MIGRATE applied migrations %s", applied)
