"""
tests/test_guard.py -- Unit tests for auth/guard.py resolution precedence.

The guard is pure with respect to HTTP, so these tests call resolve_page(),
resolve_home() and resolve_session() directly with cookie values, against the
module's LocalBackend. Failure injection uses a MagicMock backend.

Coverage:
  - No token / invalid token -> /login (sign_out only when stale cookies exist)
  - Zero roles -> /select-role; exactly one role -> auto-select + dashboard
  - Stale or foreign active role is discarded
  - Role not allowed on the page -> active role's dashboard
  - Onboarding incomplete -> /onboarding/{role}
  - Backend failure -> fail closed to /login with failed=True
  - resolve_home: landing for anonymous visitors, dashboard / selection otherwise
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from auth.guard import (
    LANDING_PATH,
    LOGIN_PATH,
    SELECT_ROLE_PATH,
    dashboard_path,
    home_path,
    onboarding_path,
    resolve_home,
    resolve_page,
    resolve_session,
)
from backend.client import BackendError
from core.models import HOMEOWNER, PROFESSIONAL, VENDOR, Session


def _failing_backend() -> MagicMock:
    backend = MagicMock()
    backend.get_session.side_effect = BackendError("connection refused")
    return backend


class TestPaths:
    def test_dashboard_path(self) -> None:
        assert dashboard_path(VENDOR) == "/dashboard/vendor"

    def test_dashboard_path_unknown_role(self) -> None:
        with pytest.raises(ValueError):
            dashboard_path("admin")

    def test_onboarding_path_rejects_homeowner(self) -> None:
        with pytest.raises(ValueError):
            onboarding_path(HOMEOWNER)

    def test_home_path(self) -> None:
        session = Session(access_token="t", user_id="u", email="e@example.com")
        assert home_path(session, VENDOR) == "/dashboard/vendor"
        assert home_path(session, None) == SELECT_ROLE_PATH
        assert home_path(None, VENDOR) == LANDING_PATH


class TestUnauthenticated:
    def test_no_token_redirects_to_login(self, backend) -> None:
        d = resolve_page(backend, None, None, None, (HOMEOWNER,))
        assert d.redirect_to == LOGIN_PATH
        assert d.sign_out is False

    def test_no_token_with_leftover_cookies_signs_out(self, backend) -> None:
        d = resolve_page(backend, None, VENDOR, "someone", (VENDOR,))
        assert d.redirect_to == LOGIN_PATH
        assert d.sign_out is True

    def test_garbage_token_redirects_to_login(self, backend) -> None:
        d = resolve_page(backend, "not-a-token", None, None, (HOMEOWNER,))
        assert d.redirect_to == LOGIN_PATH
        assert d.sign_out is True

    def test_revoked_token_redirects_to_login(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        backend.sign_out(session.access_token)
        d = resolve_page(backend, session.access_token, HOMEOWNER, session.user_id, (HOMEOWNER,))
        assert d.redirect_to == LOGIN_PATH

    def test_backend_failure_fails_closed(self) -> None:
        d = resolve_page(_failing_backend(), "tok", HOMEOWNER, "u", (HOMEOWNER,))
        assert d.redirect_to == LOGIN_PATH
        assert d.sign_out is True
        assert d.failed is True


class TestRoleSelection:
    def test_zero_roles_goes_to_role_selection(self, backend, make_user) -> None:
        session = make_user()
        d = resolve_page(backend, session.access_token, None, session.user_id, (HOMEOWNER,))
        assert d.redirect_to == SELECT_ROLE_PATH
        assert d.set_role is None

    def test_single_role_is_auto_selected(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        d = resolve_page(backend, session.access_token, None, session.user_id, (VENDOR,))
        assert d.redirect_to == dashboard_path(HOMEOWNER)
        assert d.set_role == HOMEOWNER
        assert d.active_role == HOMEOWNER

    def test_several_roles_go_to_role_selection(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER, PROFESSIONAL)
        d = resolve_page(backend, session.access_token, None, session.user_id, (HOMEOWNER,))
        assert d.redirect_to == SELECT_ROLE_PATH

    def test_stale_active_role_is_discarded(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        d = resolve_session(backend, session.access_token, VENDOR, session.user_id)
        assert d.active_role is None
        assert d.forget_role is True

    def test_foreign_active_role_is_discarded(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER, VENDOR)
        d = resolve_session(backend, session.access_token, HOMEOWNER, "another-user-id")
        assert d.active_role is None
        assert d.forget_role is True
        assert d.remember_user is True

    def test_missing_user_id_cookie_is_remembered(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        d = resolve_session(backend, session.access_token, None, None)
        assert d.remember_user is True
        assert d.forget_role is False


class TestPageAccess:
    def test_role_not_allowed_redirects_to_own_dashboard(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER, VENDOR)
        d = resolve_page(backend, session.access_token, HOMEOWNER, session.user_id, (VENDOR,))
        assert d.redirect_to == dashboard_path(HOMEOWNER)

    def test_homeowner_page_renders(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        d = resolve_page(backend, session.access_token, HOMEOWNER, session.user_id, (HOMEOWNER,))
        assert d.render
        assert d.session.user_id == session.user_id
        assert d.roles == [HOMEOWNER]

    def test_vendor_without_payload_goes_to_onboarding(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER, VENDOR)
        d = resolve_page(backend, session.access_token, VENDOR, session.user_id, (VENDOR,))
        assert d.redirect_to == onboarding_path(VENDOR)

    def test_onboarded_vendor_page_renders(self, backend, make_user, onboard_vendor) -> None:
        session = make_user(HOMEOWNER)
        onboard_vendor(session)
        d = resolve_page(backend, session.access_token, VENDOR, session.user_id, (VENDOR,))
        assert d.render
        assert d.active_role == VENDOR

    def test_onboarding_check_can_be_skipped(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER, PROFESSIONAL)
        d = resolve_page(
            backend, session.access_token, PROFESSIONAL, session.user_id, (PROFESSIONAL,), require_onboarding=False
        )
        assert d.render

    def test_onboarding_lookup_failure_fails_closed(self) -> None:
        backend = MagicMock()
        backend.get_session.return_value = Session(access_token="tok", user_id="u1", email="a@example.com")
        user_backend = backend.as_user.return_value
        calls = {"n": 0}

        def select_one(table, filters):
            calls["n"] += 1
            if table == "profiles" and calls["n"] == 1:
                return {"id": "u1", "roles": [VENDOR]}
            raise BackendError("timeout")

        user_backend.select_one.side_effect = select_one
        d = resolve_page(backend, "tok", VENDOR, "u1", (VENDOR,))
        assert d.redirect_to == LOGIN_PATH
        assert d.failed is True


class TestResolveHome:
    def test_anonymous_gets_landing(self, backend) -> None:
        d = resolve_home(backend, None, None, None)
        assert d.render
        assert d.session is None
        assert d.sign_out is False

    def test_invalid_token_gets_landing_and_clears_cookies(self, backend) -> None:
        d = resolve_home(backend, "expired-or-garbage", HOMEOWNER, "u")
        assert d.render
        assert d.sign_out is True

    def test_single_role_resolves_to_dashboard(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        d = resolve_home(backend, session.access_token, None, session.user_id)
        assert d.redirect_to == dashboard_path(HOMEOWNER)

    def test_zero_roles_resolves_to_role_selection(self, backend, make_user) -> None:
        session = make_user()
        d = resolve_home(backend, session.access_token, None, session.user_id)
        assert d.redirect_to == SELECT_ROLE_PATH

    def test_active_role_resolves_to_its_dashboard(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER, PROFESSIONAL)
        d = resolve_home(backend, session.access_token, PROFESSIONAL, session.user_id)
        assert d.redirect_to == dashboard_path(PROFESSIONAL)

    def test_backend_failure_goes_to_login(self) -> None:
        d = resolve_home(_failing_backend(), "tok", None, None)
        assert d.redirect_to == LOGIN_PATH
        assert d.failed is True
