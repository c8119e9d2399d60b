"""
auth/guard.py -- Session & role resolution for guarded pages.

Every guarded page load asks one question: render, or redirect where?
The answer is computed fresh on every request (no cross-page cache) with a
fixed precedence:

  1. No valid session                       -> /login
  2. Session valid, no active role          -> exactly one role: select it and
                                               go to its dashboard;
                                               zero or several: /select-role
  3. Active role not allowed on this page   -> the active role's dashboard
  4. Allowed, but onboarding incomplete     -> /onboarding/{role}
  5. Otherwise                              -> render

An active role is only trusted while it is a member of the user's role list
and was chosen by the same user (skillink_user_id cookie). Otherwise it is
discarded before step 2.

Failure semantics: fail closed. Any BackendError while looking up the
session, roles or onboarding state is treated as "not authenticated": the
Decision asks for the session cookies to be dropped and redirects to /login.
There is no retry.

The guard is pure with respect to HTTP: it reads the values the caller
pulled out of cookies and returns a Decision. auth.cookies.apply_decision()
turns the Decision's cookie changes into Set-Cookie headers.

Layer rule: imports core/, backend/, marketplace/ only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from backend.client import BackendClient, BackendError
from core.models import ONBOARDING_ROLES, ROLES, Session
from marketplace.roles import get_user_roles, has_completed_onboarding

logger = logging.getLogger("skillink.guard")

LOGIN_PATH = "/login"
SELECT_ROLE_PATH = "/select-role"
LANDING_PATH = "/"


@dataclass
class Decision:
    """Outcome of resolving one request.

    redirect_to   None means render the page.
    session       the verified session (None when unauthenticated).
    roles         the user's acquired roles, as read during resolution.
    active_role   the role the page should be presented under.
    set_role      write this role into the active role cookie.
    forget_role   delete the active role cookie (stale or foreign).
    remember_user write session.user_id into the user id cookie.
    sign_out      delete every session cookie.
    failed        a backend lookup raised; the visitor is treated as signed out.
    """

    redirect_to: Optional[str] = None
    session: Optional[Session] = None
    roles: list[str] = field(default_factory=list)
    active_role: Optional[str] = None
    set_role: Optional[str] = None
    forget_role: bool = False
    remember_user: bool = False
    sign_out: bool = False
    failed: bool = False

    @property
    def render(self) -> bool:
        return self.redirect_to is None


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def dashboard_path(role: str) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    return f"/dashboard/{role}"


def onboarding_path(role: str) -> str:
    if role not in ONBOARDING_ROLES:
        raise ValueError(f"Role {role!r} has no onboarding")
    return f"/onboarding/{role}"


def home_path(session: Optional[Session], active_role: Optional[str]) -> str:
    """Role-aware "go home" target: active dashboard, else role selection, else landing."""
    if session is not None and active_role in ROLES:
        return dashboard_path(active_role)
    if session is not None:
        return SELECT_ROLE_PATH
    return LANDING_PATH


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _signed_out(token: Optional[str], active_role: Optional[str], cached_user_id: Optional[str]) -> Decision:
    return Decision(redirect_to=LOGIN_PATH, sign_out=bool(token or active_role or cached_user_id))


def resolve_session(
    backend: BackendClient,
    token: Optional[str],
    active_role: Optional[str],
    cached_user_id: Optional[str],
) -> Decision:
    """Steps shared by every resolution: verify the session, load roles, vet the active role.

    Returns a Decision with redirect_to=LOGIN_PATH when the visitor is not
    authenticated; otherwise redirect_to is None and session, roles and
    active_role (possibly None) are filled in.
    """
    if not token:
        return _signed_out(token, active_role, cached_user_id)
    try:
        session = backend.get_session(token)
        if session is None:
            return _signed_out(token, active_role, cached_user_id)
        roles = get_user_roles(backend.as_user(token), session.user_id)
    except BackendError as exc:
        logger.warning("Session/role lookup failed, treating as signed out: %s", exc)
        return Decision(redirect_to=LOGIN_PATH, sign_out=True, failed=True)

    decision = Decision(session=session, roles=roles, active_role=active_role)
    if cached_user_id != session.user_id:
        decision.remember_user = True
        if active_role is not None:
            logger.info("Discarding active role chosen by a different user")
            decision.active_role = None
            decision.forget_role = True
    if decision.active_role is not None and decision.active_role not in roles:
        logger.info("Discarding stale active role %s for user %s", decision.active_role, session.user_id)
        decision.active_role = None
        decision.forget_role = True
    return decision


def _pick_role(decision: Decision) -> Decision:
    """Step 2: no active role. Auto-select a single role, else ask the user."""
    if len(decision.roles) == 1:
        role = decision.roles[0]
        decision.active_role = role
        decision.set_role = role
        decision.forget_role = False
        decision.redirect_to = dashboard_path(role)
    else:
        decision.redirect_to = SELECT_ROLE_PATH
    return decision


def resolve_page(
    backend: BackendClient,
    token: Optional[str],
    active_role: Optional[str],
    cached_user_id: Optional[str],
    allowed_roles: Iterable[str],
    require_onboarding: bool = True,
) -> Decision:
    """Resolve a guarded page load. See the module docstring for precedence."""
    decision = resolve_session(backend, token, active_role, cached_user_id)
    if decision.redirect_to is not None:
        return decision
    if decision.active_role is None:
        return _pick_role(decision)

    role = decision.active_role
    if role not in set(allowed_roles):
        decision.redirect_to = dashboard_path(role)
        return decision

    if require_onboarding:
        try:
            onboarded = has_completed_onboarding(
                backend.as_user(token), decision.session.user_id, role, decision.roles
            )
        except BackendError as exc:
            logger.warning("Onboarding lookup failed, treating as signed out: %s", exc)
            return Decision(redirect_to=LOGIN_PATH, sign_out=True, failed=True)
        if not onboarded:
            decision.redirect_to = onboarding_path(role)
    return decision


def resolve_home(
    backend: BackendClient,
    token: Optional[str],
    active_role: Optional[str],
    cached_user_id: Optional[str],
) -> Decision:
    """Resolve the root URL.

    Anonymous visitors (no token, or a token the backend no longer accepts)
    get the landing page: a Decision with redirect_to=None and no session.
    Signed-in users go to their active dashboard, or through role selection.
    Backend failures still fail closed to /login.
    """
    if not token:
        return Decision(sign_out=bool(active_role or cached_user_id))
    decision = resolve_session(backend, token, active_role, cached_user_id)
    if decision.failed:
        return decision
    if decision.session is None:
        return Decision(sign_out=True)
    if decision.active_role is None:
        return _pick_role(decision)
    decision.redirect_to = dashboard_path(decision.active_role)
    return decision
