"""
auth/cookies.py -- Browser-side session state: the three Skillink cookies.

  skillink_auth_token   access token issued by the backend (opaque)
  skillink_active_role  which of the user's roles is being presented
  skillink_user_id      user id the active role was chosen under

The active role is device-local: it is never
written to the backend, so two browsers can present different roles for
the same account. skillink_user_id lets the guard notice that a different
user has signed in on this browser and discard the stale role.

All cookies: httponly, samesite=lax, secure when SECURE_COOKIES=true.
The token cookie's max_age follows the session expiry so both lapse
together.

Layer rule: imports core/ only (plus fastapi/starlette response types).
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Optional

from core.config import get_settings
from core.models import ROLES, Session

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

    from auth.guard import Decision

TOKEN_COOKIE = "skillink_auth_token"
ACTIVE_ROLE_COOKIE = "skillink_active_role"
USER_ID_COOKIE = "skillink_user_id"

_DEVICE_STATE_MAX_AGE = 30 * 24 * 3600  # 30 days


def _set(response: "Response", name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value=value,
        httponly=True,
        samesite="lax",
        secure=get_settings().secure_cookies,
        max_age=max_age,
    )


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


def read_token(request: "Request") -> Optional[str]:
    return request.cookies.get(TOKEN_COOKIE) or None


def read_active_role(request: "Request") -> Optional[str]:
    """Return the active role cookie if it names a known role, else None."""
    role = request.cookies.get(ACTIVE_ROLE_COOKIE)
    return role if role in ROLES else None


def read_user_id(request: "Request") -> Optional[str]:
    return request.cookies.get(USER_ID_COOKIE) or None


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


def set_session_cookies(response: "Response", session: Session) -> None:
    """Store a freshly issued session. Any previous active role is cleared."""
    max_age = get_settings().token_expire_seconds
    if session.expires_at:
        max_age = max(int(session.expires_at - time.time()), 1)
    _set(response, TOKEN_COOKIE, session.access_token, max_age)
    _set(response, USER_ID_COOKIE, session.user_id, _DEVICE_STATE_MAX_AGE)
    response.delete_cookie(ACTIVE_ROLE_COOKIE)


def clear_session_cookies(response: "Response") -> None:
    for name in (TOKEN_COOKIE, ACTIVE_ROLE_COOKIE, USER_ID_COOKIE):
        response.delete_cookie(name)


def set_active_role(response: "Response", role: str, user_id: Optional[str] = None) -> None:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    _set(response, ACTIVE_ROLE_COOKIE, role, _DEVICE_STATE_MAX_AGE)
    if user_id:
        _set(response, USER_ID_COOKIE, user_id, _DEVICE_STATE_MAX_AGE)


def clear_active_role(response: "Response") -> None:
    response.delete_cookie(ACTIVE_ROLE_COOKIE)


def apply_decision(response: "Response", decision: "Decision") -> "Response":
    """Write the cookie changes a guard Decision calls for onto response."""
    if decision.sign_out:
        clear_session_cookies(response)
        return response
    if decision.forget_role:
        clear_active_role(response)
    if decision.set_role:
        set_active_role(response, decision.set_role)
    if decision.session is not None and decision.remember_user:
        _set(response, USER_ID_COOKIE, decision.session.user_id, _DEVICE_STATE_MAX_AGE)
    return response
