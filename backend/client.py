"""
backend/client.py -- Contract for the backend-as-a-service collaborator.

Skillink does not own its data store. Authentication, table storage and
row-level security belong to a hosted backend; this module defines the
narrow surface the application consumes from it:

  Auth:   sign_in, sign_up, sign_out, get_session
  Tables: select, select_one, insert, update, upsert, delete
          (equality filters, ordering by a timestamp column)

Two implementations exist:
  backend/supabase.py -- HTTP client for a hosted Supabase project
  backend/local.py    -- SQLAlchemy Core stand-in for development and tests

Pattern: Port / Adapter. Route and marketplace code depend only on
BackendClient; the concrete adapter is chosen once at startup and stored on
app.state.backend.

Error model: every failure surfaces as BackendError. Rejected credentials
raise AuthError (a subclass) so the login form can show an inline message
instead of a toast. Table and column names are validated against TABLES
before any I/O -- callers can never inject an identifier.

Layer rule: backend/ imports only core/ plus third-party libraries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from core.models import Session

# Columns per collection. Only these identifiers may appear in filters,
# ordering or written rows.
TABLES: dict[str, frozenset[str]] = {
    "profiles": frozenset({"id", "full_name", "avatar_url", "roles", "vendor_data", "created_at", "updated_at"}),
    "professionals": frozenset(
        {
            "id",
            "full_name",
            "profession_type",
            "experience",
            "location",
            "phone",
            "bio",
            "profile_picture",
            "created_at",
        }
    ),
    "vendors": frozenset(
        {
            "id",
            "company_name",
            "business_type",
            "years_in_business",
            "location",
            "contact_person",
            "phone",
            "description",
            "created_at",
        }
    ),
    "products": frozenset(
        {
            "id",
            "vendor_id",
            "name",
            "description",
            "price",
            "category",
            "stock",
            "image_url",
            "created_at",
            "updated_at",
        }
    ),
}

Row = dict[str, Any]


class BackendError(Exception):
    """Any failure talking to the backend service (network, HTTP, SQL, schema)."""


class AuthError(BackendError):
    """The auth service rejected the credentials (wrong password, duplicate sign-up)."""


def check_columns(table: str, columns) -> None:
    """Raise BackendError unless table is known and every column belongs to it."""
    known = TABLES.get(table)
    if known is None:
        raise BackendError(f"Unknown table: {table!r}")
    unknown = set(columns) - known
    if unknown:
        raise BackendError(f"Unknown column(s) on {table}: {sorted(unknown)!r}")


class BackendClient(ABC):
    """Abstract backend collaborator.

    Implementations must be safe to share across requests. Per-user
    credentials are attached with as_user(), which returns a client bound to
    one access token without mutating the shared instance.
    """

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    @abstractmethod
    def sign_in(self, email: str, password: str) -> Session:
        """Exchange credentials for a session. Raises AuthError if rejected."""

    @abstractmethod
    def sign_up(self, email: str, password: str) -> Optional[Session]:
        """Register a user. Returns None when the service requires email confirmation."""

    @abstractmethod
    def sign_out(self, access_token: str) -> None:
        """Revoke the session behind access_token."""

    @abstractmethod
    def get_session(self, access_token: str) -> Optional[Session]:
        """Return the live session for access_token, or None if invalid/expired/revoked."""

    def as_user(self, access_token: str) -> "BackendClient":
        """Return a client whose table calls run with this user's credentials."""
        return self

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Row] = None,
        order_by: Optional[str] = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> list[Row]:
        """Return rows matching every equality filter."""

    def select_one(self, table: str, filters: Row) -> Optional[Row]:
        """Return the first row matching filters, or None."""
        rows = self.select(table, filters, order_by=None, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Insert one row and return it as stored (with generated id / timestamps)."""

    @abstractmethod
    def update(self, table: str, values: Row, filters: Row) -> int:
        """Update rows matching filters. Returns the number of rows matched."""

    @abstractmethod
    def upsert(self, table: str, row: Row) -> Row:
        """Insert or replace the row identified by row["id"]."""

    @abstractmethod
    def delete(self, table: str, filters: Row) -> int:
        """Delete rows matching filters. Returns the number of rows deleted."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    def ping(self) -> bool:
        """Cheap liveness probe used by the health endpoint."""

    def close(self) -> None:
        """Release pooled connections."""
