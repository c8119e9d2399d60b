"""
backend/local.py -- SQLAlchemy Core stand-in for the hosted backend.

Implements the BackendClient contract against a SQL database so Skillink can
run and be tested without a hosted project. It is deliberately no smarter
than the real collaborator: equality filters, ordering, upsert by id, and a
password/session auth service. There is no row-level security; ownership is
enforced by the callers' query filters, exactly as with the hosted service.

Pattern: Repository + Data Mapper. Table definitions mirror the schema that
backend/migrations.py creates; this module never issues DDL. Rows cross the
boundary as plain dicts, with JSON columns (profiles.roles,
profiles.vendor_data) decoded on the way out and encoded on the way in.

Usage:
    backend = LocalBackend("sqlite:///skillink.db")
    session = backend.sign_up("ada@example.com", "secret123")
    backend.upsert("profiles", {"id": session.user_id, "roles": ["homeowner"]})
    backend.close()

Security: all queries use bound parameters. Identifiers are validated
against backend.client.TABLES before a statement is built.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backend.client import AuthError, BackendClient, BackendError, Row, check_columns
from backend.tokens import (
    burn_password_check,
    create_access_token,
    decode_access_token,
    hash_password,
    new_session_id,
    verify_password,
)
from core.models import Session

logger = logging.getLogger("skillink.backend.local")

_MIN_PASSWORD_LENGTH = 6

# ---------------------------------------------------------------------------
# Schema (query-side mirror of backend/migrations.py)
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_auth_sessions = Table(
    "auth_sessions",
    _metadata,
    Column("id", String(32), primary_key=True),  # token jti
    Column("user_id", String(36), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", Integer, nullable=False),
)

_tables: dict[str, Table] = {
    "profiles": Table(
        "profiles",
        _metadata,
        Column("id", String(36), primary_key=True),
        Column("full_name", String(255)),
        Column("avatar_url", Text),
        Column("roles", Text, nullable=False),
        Column("vendor_data", Text),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32)),
    ),
    "professionals": Table(
        "professionals",
        _metadata,
        Column("id", String(36), primary_key=True),
        Column("full_name", String(255), nullable=False),
        Column("profession_type", String(50), nullable=False),
        Column("experience", Integer, nullable=False),
        Column("location", String(255), nullable=False),
        Column("phone", String(50), nullable=False),
        Column("bio", Text, nullable=False),
        Column("profile_picture", Text),
        Column("created_at", String(32), nullable=False),
    ),
    "vendors": Table(
        "vendors",
        _metadata,
        Column("id", String(36), primary_key=True),
        Column("company_name", String(255), nullable=False),
        Column("business_type", String(50), nullable=False),
        Column("years_in_business", Integer, nullable=False),
        Column("location", String(255), nullable=False),
        Column("contact_person", String(255), nullable=False),
        Column("phone", String(50), nullable=False),
        Column("description", Text, nullable=False),
        Column("created_at", String(32), nullable=False),
    ),
    "products": Table(
        "products",
        _metadata,
        Column("id", String(36), primary_key=True),
        Column("vendor_id", String(36), nullable=False),
        Column("name", String(255), nullable=False),
        Column("description", Text),
        Column("price", Float, nullable=False),
        Column("category", String(50), nullable=False),
        Column("stock", Integer, nullable=False),
        Column("image_url", Text),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
    ),
}

# Columns stored as JSON text.
_JSON_COLUMNS: dict[str, frozenset[str]] = {
    "profiles": frozenset({"roles", "vendor_data"}),
}

# Tables whose primary key is generated on insert (others are keyed by user id).
_GENERATED_IDS = frozenset({"products"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode. Set per-connection: SQLite PRAGMAs are not inherited."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _encode(table: str, row: Row) -> Row:
    json_cols = _JSON_COLUMNS.get(table, frozenset())
    return {k: (json.dumps(v) if k in json_cols and v is not None else v) for k, v in row.items()}


def _decode(table: str, row) -> Row:
    json_cols = _JSON_COLUMNS.get(table, frozenset())
    out = dict(row._mapping)
    for col in json_cols:
        if out.get(col) is not None:
            out[col] = json.loads(out[col])
    if table == "profiles" and out.get("roles") is None:
        out["roles"] = []
    return out


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class LocalBackend(BackendClient):
    """SQL-backed implementation of the backend collaborator contract."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # TestClient and uvicorn run sync handlers in a thread pool.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str) -> Optional[Session]:
        email = email.strip().lower()
        if not email or "@" not in email:
            raise AuthError("A valid email address is required.")
        if len(password) < _MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        user_id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        email=email,
                        hashed_password=hash_password(password),
                        created_at=_now_iso(),
                    )
                )
        except IntegrityError as exc:
            raise AuthError("User already registered.") from exc
        except SQLAlchemyError as exc:
            raise BackendError(f"sign_up failed: {exc}") from exc
        logger.info("Registered user %s", user_id)
        return self._open_session(user_id, email)

    def sign_in(self, email: str, password: str) -> Session:
        """Authenticate with timing equalization.

        bcrypt always runs, whether or not the email exists, so response time
        does not reveal which emails are registered.
        """
        email = email.strip().lower()
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        except SQLAlchemyError as exc:
            raise BackendError(f"sign_in failed: {exc}") from exc
        if row is None:
            burn_password_check(password)
            raise AuthError("Invalid login credentials.")
        if not verify_password(password, row.hashed_password):
            raise AuthError("Invalid login credentials.")
        return self._open_session(row.id, row.email)

    def sign_out(self, access_token: str) -> None:
        payload = decode_access_token(access_token)
        if payload is None:
            return
        try:
            with self.engine.begin() as conn:
                conn.execute(_auth_sessions.delete().where(_auth_sessions.c.id == payload["jti"]))
        except SQLAlchemyError as exc:
            raise BackendError(f"sign_out failed: {exc}") from exc

    def get_session(self, access_token: str) -> Optional[Session]:
        payload = decode_access_token(access_token)
        if payload is None:
            return None
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    _auth_sessions.select().where(
                        (_auth_sessions.c.id == payload["jti"]) & (_auth_sessions.c.user_id == payload["sub"])
                    )
                ).fetchone()
        except SQLAlchemyError as exc:
            raise BackendError(f"get_session failed: {exc}") from exc
        if row is None or row.expires_at <= int(datetime.now(timezone.utc).timestamp()):
            return None
        return Session(
            access_token=access_token,
            user_id=payload["sub"],
            email=payload["email"],
            expires_at=row.expires_at,
        )

    def _open_session(self, user_id: str, email: str) -> Session:
        session_id = new_session_id()
        token, expires_at = create_access_token(user_id, email, session_id)
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _auth_sessions.insert().values(
                        id=session_id,
                        user_id=user_id,
                        created_at=_now_iso(),
                        expires_at=expires_at,
                    )
                )
        except SQLAlchemyError as exc:
            raise BackendError(f"Could not open session: {exc}") from exc
        return Session(access_token=token, user_id=user_id, email=email, expires_at=expires_at)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        filters: Optional[Row] = None,
        order_by: Optional[str] = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> list[Row]:
        filters = filters or {}
        check_columns(table, list(filters) + ([order_by] if order_by else []))
        t = _tables[table]
        stmt = t.select()
        for col, value in filters.items():
            stmt = stmt.where(t.c[col] == value)
        if order_by:
            stmt = stmt.order_by(t.c[order_by].desc() if descending else t.c[order_by].asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as exc:
            raise BackendError(f"select on {table} failed: {exc}") from exc
        return [_decode(table, r) for r in rows]

    def insert(self, table: str, row: Row) -> Row:
        check_columns(table, row)
        values = self._with_defaults(table, dict(row))
        try:
            with self.engine.begin() as conn:
                conn.execute(_tables[table].insert().values(**_encode(table, values)))
        except SQLAlchemyError as exc:
            raise BackendError(f"insert into {table} failed: {exc}") from exc
        return self.select_one(table, {"id": values["id"]}) or values

    def update(self, table: str, values: Row, filters: Row) -> int:
        if not filters:
            raise BackendError("update requires at least one filter")
        check_columns(table, list(values) + list(filters))
        t = _tables[table]
        values = dict(values)
        if "updated_at" in t.c and "updated_at" not in values:
            values["updated_at"] = _now_iso()
        stmt = t.update().values(**_encode(table, values))
        for col, value in filters.items():
            stmt = stmt.where(t.c[col] == value)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise BackendError(f"update on {table} failed: {exc}") from exc
        return result.rowcount

    def upsert(self, table: str, row: Row) -> Row:
        """Insert, or update only the supplied columns when row["id"] exists."""
        if not row.get("id"):
            raise BackendError("upsert requires an id")
        check_columns(table, row)
        t = _tables[table]
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(t.select().where(t.c.id == row["id"])).fetchone() is not None
                if exists:
                    changes = {k: v for k, v in row.items() if k != "id"}
                    if changes:
                        conn.execute(t.update().where(t.c.id == row["id"]).values(**_encode(table, changes)))
                else:
                    conn.execute(t.insert().values(**_encode(table, self._with_defaults(table, dict(row)))))
        except SQLAlchemyError as exc:
            raise BackendError(f"upsert on {table} failed: {exc}") from exc
        return self.select_one(table, {"id": row["id"]}) or row

    def delete(self, table: str, filters: Row) -> int:
        if not filters:
            raise BackendError("delete requires at least one filter")
        check_columns(table, filters)
        t = _tables[table]
        stmt = t.delete()
        for col, value in filters.items():
            stmt = stmt.where(t.c[col] == value)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise BackendError(f"delete on {table} failed: {exc}") from exc
        return result.rowcount

    def _with_defaults(self, table: str, values: Row) -> Row:
        t = _tables[table]
        now = _now_iso()
        if not values.get("id"):
            if table not in _GENERATED_IDS:
                raise BackendError(f"{table} rows are keyed by user id; id is required")
            values["id"] = str(uuid.uuid4())
        values.setdefault("created_at", now)
        if "updated_at" in t.c:
            values.setdefault("updated_at", now)
        if table == "profiles":
            values.setdefault("roles", [])
        return values

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Local backend ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
