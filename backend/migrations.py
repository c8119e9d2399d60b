"""
backend/migrations.py -- Explicit, versioned schema migrations for the local backend.

Schema changes are owned by backend tooling, never by request-handling code.
Each migration is an ordered (version, description, statements) entry; the
applied versions are recorded in schema_migrations so upgrade() is idempotent.

Run with:  python main.py migrate
           python main.py status

The web application only reads current_version() at startup and refuses to
serve against an out-of-date schema (unless AUTO_MIGRATE=true).

Versions 2 and 3 add the profiles.roles list and the profiles.vendor_data
blob as separate steps so databases created before either column existed
upgrade in place without losing rows.

Security: statements are static SQL literals. Nothing here is built from
user input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.client import BackendError

logger = logging.getLogger("skillink.backend.migrations")


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        1,
        "initial schema: users, sessions, profiles, professionals, products",
        (
            """
            CREATE TABLE users (
                id VARCHAR(36) PRIMARY KEY,
                email VARCHAR(255) NOT NULL UNIQUE,
                hashed_password TEXT NOT NULL,
                created_at VARCHAR(32) NOT NULL
            )
            """,
            """
            CREATE TABLE auth_sessions (
                id VARCHAR(32) PRIMARY KEY,
                user_id VARCHAR(36) NOT NULL,
                created_at VARCHAR(32) NOT NULL,
                expires_at INTEGER NOT NULL
            )
            """,
            """
            CREATE TABLE profiles (
                id VARCHAR(36) PRIMARY KEY,
                full_name VARCHAR(255),
                avatar_url TEXT,
                created_at VARCHAR(32) NOT NULL,
                updated_at VARCHAR(32)
            )
            """,
            """
            CREATE TABLE professionals (
                id VARCHAR(36) PRIMARY KEY,
                full_name VARCHAR(255) NOT NULL,
                profession_type VARCHAR(50) NOT NULL,
                experience INTEGER NOT NULL DEFAULT 0,
                location VARCHAR(255) NOT NULL,
                phone VARCHAR(50) NOT NULL,
                bio TEXT NOT NULL,
                profile_picture TEXT,
                created_at VARCHAR(32) NOT NULL
            )
            """,
            """
            CREATE TABLE products (
                id VARCHAR(36) PRIMARY KEY,
                vendor_id VARCHAR(36) NOT NULL,
                name VARCHAR(255) NOT NULL,
                description TEXT,
                price REAL NOT NULL DEFAULT 0,
                category VARCHAR(50) NOT NULL,
                stock INTEGER NOT NULL DEFAULT 0,
                image_url TEXT,
                created_at VARCHAR(32) NOT NULL,
                updated_at VARCHAR(32) NOT NULL
            )
            """,
        ),
    ),
    Migration(
        2,
        "profiles.roles: JSON list of acquired roles",
        ("ALTER TABLE profiles ADD COLUMN roles TEXT NOT NULL DEFAULT '[]'",),
    ),
    Migration(
        3,
        "profiles.vendor_data: JSON vendor onboarding payload",
        ("ALTER TABLE profiles ADD COLUMN vendor_data TEXT",),
    ),
    Migration(
        4,
        "vendors: public seller directory",
        (
            """
            CREATE TABLE vendors (
                id VARCHAR(36) PRIMARY KEY,
                company_name VARCHAR(255) NOT NULL,
                business_type VARCHAR(50) NOT NULL,
                years_in_business INTEGER NOT NULL DEFAULT 0,
                location VARCHAR(255) NOT NULL,
                contact_person VARCHAR(255) NOT NULL,
                phone VARCHAR(50) NOT NULL,
                description TEXT NOT NULL,
                created_at VARCHAR(32) NOT NULL
            )
            """,
        ),
    ),
    Migration(
        5,
        "products: index on owning vendor",
        ("CREATE INDEX ix_products_vendor_id ON products (vendor_id)",),
    ),
)

LATEST_VERSION: int = MIGRATIONS[-1].version

_CREATE_VERSION_TABLE = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version INTEGER PRIMARY KEY,
        description TEXT NOT NULL,
        applied_at VARCHAR(32) NOT NULL
    )
"""


def current_version(engine: Engine) -> int:
    """Return the highest applied migration version (0 for an empty database)."""
    try:
        if not inspect(engine).has_table("schema_migrations"):
            return 0
        with engine.connect() as conn:
            result = conn.execute(text("SELECT MAX(version) FROM schema_migrations")).scalar()
    except SQLAlchemyError as exc:
        raise BackendError(f"Could not read schema version: {exc}") from exc
    return int(result or 0)


def pending(engine: Engine) -> list[Migration]:
    """Return the migrations not yet applied, in order."""
    applied = current_version(engine)
    return [m for m in MIGRATIONS if m.version > applied]


def upgrade(engine: Engine, target: Optional[int] = None) -> list[int]:
    """Apply pending migrations up to target (default: latest). Returns applied versions.

    Each migration runs in its own transaction together with its
    schema_migrations row, so a failure leaves the database at the last
    fully applied version.
    """
    target = LATEST_VERSION if target is None else target
    applied: list[int] = []
    try:
        with engine.begin() as conn:
            conn.execute(text(_CREATE_VERSION_TABLE))
        for migration in pending(engine):
            if migration.version > target:
                break
            with engine.begin() as conn:
                for statement in migration.statements:
                    conn.execute(text(statement))
                conn.execute(
                    text(
                        "INSERT INTO schema_migrations (version, description, applied_at) "
                        "VALUES (:version, :description, :applied_at)"
                    ),
                    {
                        "version": migration.version,
                        "description": migration.description,
                        "applied_at": datetime.now(timezone.utc).isoformat(),
                    },
                )
            logger.info("Applied migration %d: %s", migration.version, migration.description)
            applied.append(migration.version)
    except SQLAlchemyError as exc:
        raise BackendError(f"Migration failed: {exc}") from exc
    return applied
