"""
backend/supabase.py -- HTTP adapter for a hosted Supabase project.

Maps the BackendClient contract onto the two public Supabase APIs:

  Auth (GoTrue):   POST /auth/v1/token?grant_type=password   sign_in
                   POST /auth/v1/signup                      sign_up
                   POST /auth/v1/logout                      sign_out
                   GET  /auth/v1/user                        get_session
                   GET  /auth/v1/health                      ping
  Tables (PostgREST):
                   GET    /rest/v1/{table}?col=eq.value&order=created_at.desc
                   POST   /rest/v1/{table}                   insert / upsert
                   PATCH  /rest/v1/{table}?col=eq.value      update
                   DELETE /rest/v1/{table}?col=eq.value      delete

Every request carries the project's anon key in the apikey header. Table
calls made through as_user() carry the user's access token as the Bearer
credential so the project's row-level security policies apply; otherwise
the anon key is used.

A module-level requests.Session would be shared by every SupabaseBackend;
instead each backend owns one Session (connection pooling) and as_user()
views share their parent's. max_redirects is capped at 3.

Error model: requests.RequestException and any 4xx/5xx response become
BackendError. Credential rejections on the auth endpoints become AuthError.
"""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Optional

import requests

from backend.client import AuthError, BackendClient, BackendError, Row, check_columns
from core.models import Session

logger = logging.getLogger("skillink.backend.supabase")


def _eq(value: Any) -> str:
    """Encode a PostgREST equality filter value."""
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    if value is None:
        return "is.null"
    return f"eq.{value}"


class SupabaseBackend(BackendClient):
    """BackendClient backed by a hosted Supabase project."""

    def __init__(self, url: str, anon_key: str, timeout: float = 10.0) -> None:
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._http = requests.Session()
        self._http.max_redirects = 3

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _headers(self, bearer: Optional[str] = None, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {bearer or self._access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        bearer: Optional[str] = None,
        prefer: Optional[str] = None,
    ) -> requests.Response:
        try:
            return self._http.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                headers=self._headers(bearer, prefer),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Supabase %s %s failed: %s", method, path, exc)
            raise BackendError(f"{method} {path} failed: {exc}") from exc

    def _check(self, resp: requests.Response, what: str) -> Any:
        if resp.status_code >= 400:
            logger.warning("Supabase %s returned %d: %s", what, resp.status_code, resp.text[:200])
            raise BackendError(f"{what} failed with HTTP {resp.status_code}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise BackendError(f"{what} returned a non-JSON body") from exc

    @staticmethod
    def _session_from(payload: dict) -> Session:
        user = payload.get("user") or {}
        expires_at = payload.get("expires_at")
        if expires_at is None and payload.get("expires_in"):
            expires_at = int(time.time()) + int(payload["expires_in"])
        try:
            return Session(
                access_token=payload["access_token"],
                user_id=user["id"],
                email=user.get("email", ""),
                expires_at=expires_at,
            )
        except KeyError as exc:
            raise BackendError(f"Malformed session payload: missing {exc}") from exc

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> Session:
        resp = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email.strip(), "password": password},
        )
        if resp.status_code in (400, 401, 422):
            raise AuthError("Invalid login credentials.")
        return self._session_from(self._check(resp, "sign_in"))

    def sign_up(self, email: str, password: str) -> Optional[Session]:
        resp = self._request("POST", "/auth/v1/signup", json={"email": email.strip(), "password": password})
        if resp.status_code in (400, 422):
            message = "Sign-up was rejected."
            try:
                body = resp.json()
                message = body.get("msg") or body.get("error_description") or message
            except ValueError:
                pass
            raise AuthError(message)
        payload = self._check(resp, "sign_up") or {}
        # Projects with email confirmation enabled return the user only.
        if "access_token" not in payload:
            return None
        return self._session_from(payload)

    def sign_out(self, access_token: str) -> None:
        resp = self._request("POST", "/auth/v1/logout", bearer=access_token)
        if resp.status_code in (401, 403, 404):
            return  # already invalid
        self._check(resp, "sign_out")

    def get_session(self, access_token: str) -> Optional[Session]:
        resp = self._request("GET", "/auth/v1/user", bearer=access_token)
        if resp.status_code in (401, 403):
            return None
        user = self._check(resp, "get_session") or {}
        if "id" not in user:
            return None
        return Session(access_token=access_token, user_id=user["id"], email=user.get("email", ""))

    def as_user(self, access_token: str) -> "SupabaseBackend":
        scoped = copy.copy(self)
        scoped._access_token = access_token
        return scoped

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
        params: dict[str, Any] = {"select": "*"}
        params.update({col: _eq(v) for col, v in filters.items()})
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = limit
        rows = self._check(self._request("GET", f"/rest/v1/{table}", params=params), f"select {table}")
        return rows or []

    def insert(self, table: str, row: Row) -> Row:
        check_columns(table, row)
        rows = self._check(
            self._request("POST", f"/rest/v1/{table}", json=row, prefer="return=representation"),
            f"insert {table}",
        )
        return rows[0] if rows else dict(row)

    def update(self, table: str, values: Row, filters: Row) -> int:
        if not filters:
            raise BackendError("update requires at least one filter")
        check_columns(table, list(values) + list(filters))
        rows = self._check(
            self._request(
                "PATCH",
                f"/rest/v1/{table}",
                params={col: _eq(v) for col, v in filters.items()},
                json=values,
                prefer="return=representation",
            ),
            f"update {table}",
        )
        return len(rows or [])

    def upsert(self, table: str, row: Row) -> Row:
        if not row.get("id"):
            raise BackendError("upsert requires an id")
        check_columns(table, row)
        rows = self._check(
            self._request(
                "POST",
                f"/rest/v1/{table}",
                params={"on_conflict": "id"},
                json=row,
                prefer="resolution=merge-duplicates,return=representation",
            ),
            f"upsert {table}",
        )
        return rows[0] if rows else dict(row)

    def delete(self, table: str, filters: Row) -> int:
        if not filters:
            raise BackendError("delete requires at least one filter")
        check_columns(table, filters)
        rows = self._check(
            self._request(
                "DELETE",
                f"/rest/v1/{table}",
                params={col: _eq(v) for col, v in filters.items()},
                prefer="return=representation",
            ),
            f"delete {table}",
        )
        return len(rows or [])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        try:
            resp = self._request("GET", "/auth/v1/health")
        except BackendError:
            return False
        return resp.status_code < 400

    def close(self) -> None:
        self._http.close()
