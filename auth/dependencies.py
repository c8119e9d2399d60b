"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. Session cookie ("skillink_auth_token") -- set by the web UI login flow.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on a core.models.Session after the backend confirms the token.

try_get_session() is the soft variant (returns None on failure).
get_current_session() wraps it and raises HTTP 401 if unauthenticated.
require_vendor() wraps get_current_session() and raises HTTP 403 unless the
user holds the vendor role with onboarding complete.

Backend failures during the lookup count as "not authenticated" (fail
closed), matching the page guard in auth/guard.py.

Layer rule: no imports from api/ or web/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request

from auth.cookies import TOKEN_COOKIE
from backend.client import BackendClient, BackendError
from core.models import VENDOR, Session
from marketplace.roles import get_user_roles, has_completed_onboarding

logger = logging.getLogger("skillink.auth")


def get_backend(request: Request) -> BackendClient:
    """Return the shared backend client wired at startup."""
    return request.app.state.backend


def request_token(request: Request) -> str | None:
    """Extract the access token from the session cookie or a Bearer header."""
    token: str | None = request.cookies.get(TOKEN_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_session(request: Request) -> Session | None:
    """Return the verified Session for this request, or None.

    Never raises -- callers that need a hard 401 should use get_current_session().
    """
    token = request_token(request)
    if not token:
        return None
    try:
        return get_backend(request).get_session(token)
    except BackendError as exc:
        logger.warning("Session lookup failed: %s", exc)
        return None


def get_current_session(request: Request) -> Session:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: Session = Depends(get_current_session)): ...
    """
    session = try_get_session(request)
    if session is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def require_vendor(request: Request, session: Session = Depends(get_current_session)) -> Session:
    """Require an onboarded vendor. Raises HTTP 403 otherwise."""
    backend = get_backend(request).as_user(session.access_token)
    try:
        roles = get_user_roles(backend, session.user_id)
        onboarded = has_completed_onboarding(backend, session.user_id, VENDOR, roles)
    except BackendError as exc:
        logger.warning("Role lookup failed for user %s: %s", session.user_id, exc)
        raise HTTPException(status_code=503, detail="Backend unavailable") from exc
    if not onboarded:
        raise HTTPException(status_code=403, detail="Vendor role with completed onboarding required")
    return session
