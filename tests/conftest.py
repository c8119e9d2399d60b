"""
tests/conftest.py -- Shared test fixtures for Skillink integration tests.

This module provides:
  - make_backend(): an isolated, fully migrated in-memory LocalBackend
  - _patch_lifespan(): wires a test backend into app.state, bypassing real startup
  - backend: module-scoped LocalBackend shared by a test module's client
  - client: TestClient with follow_redirects=False and an empty cookie jar
  - make_user / onboard_professional / onboard_vendor: account builders
  - tight_login_limit: a low LOGIN_RATE_LIMIT with fresh limiter counters

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any core/api import so that
get_settings() builds the test configuration: SECRET_KEY is pinned so
tokens stay valid if the settings cache is cleared, ALLOWED_HOSTS admits TestClient's "testserver" Host header,
and LOGIN_RATE_LIMIT is raised so login-heavy modules are not throttled.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Optional

# CRITICAL: Set these before any core/api import so get_settings() picks them up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "skillink-test-secret-key-0123456789abcdef")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("BACKEND", "local")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.limiter import limiter
from backend import migrations
from backend.local import LocalBackend
from core.config import get_settings
from core.models import ProfessionalProfile, Session, VendorProfile
from helpers import PASSWORD
from marketplace.onboarding import submit_professional, submit_vendor
from marketplace.roles import save_user_role

# ---------------------------------------------------------------------------
# Backend helpers
# ---------------------------------------------------------------------------


def make_backend(name: Optional[str] = None) -> LocalBackend:
    """Create an isolated named shared-memory LocalBackend at the latest schema.

    Args:
        name: Unique database name so test modules don't share state.
              A random one is generated when omitted.
    """
    name = name or uuid.uuid4().hex
    backend = LocalBackend(f"sqlite:///file:skillink_{name}?mode=memory&cache=shared&uri=true")
    migrations.upgrade(backend.engine)
    return backend


def _patch_lifespan(backend: LocalBackend):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test backend into app.state so TestClient routes
    see an isolated database instead of the configured DATABASE_URL. The
    backend is closed by the fixture that created it, not here.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.backend = backend
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def backend() -> Generator[LocalBackend, None, None]:
    backend = make_backend()
    yield backend
    backend.close()


@pytest.fixture(scope="module")
def _module_client(backend: LocalBackend) -> Generator[TestClient, None, None]:
    """One TestClient per test module for speed.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations*, which are invisible once the client follows the
    redirect and returns the final 200 response.
    """
    app.router.lifespan_context = _patch_lifespan(backend)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture()
def client(_module_client: TestClient) -> TestClient:
    """The module's TestClient with an empty cookie jar."""
    _module_client.cookies.clear()
    return _module_client


@pytest.fixture()
def make_user(backend: LocalBackend):
    """Factory: make_user(*roles) -> Session for a fresh account holding roles.

    Roles are granted directly. Professional/vendor payloads are NOT written;
    use onboard_professional / onboard_vendor for that.
    """

    def _make(*roles: str, email: Optional[str] = None) -> Session:
        email = email or f"user-{uuid.uuid4().hex[:10]}@example.com"
        session = backend.sign_up(email, PASSWORD)
        for role in roles:
            save_user_role(backend, session.user_id, role)
        return session

    return _make


@pytest.fixture()
def onboard_professional(backend: LocalBackend):
    def _onboard(session: Session, **overrides) -> ProfessionalProfile:
        fields = {
            "full_name": "Ada Builder",
            "profession_type": "Architect",
            "experience": 7,
            "location": "Nairobi",
            "phone": "+254700000001",
            "bio": "Residential design and renovation.",
        }
        fields.update(overrides)
        return submit_professional(backend, session.user_id, ProfessionalProfile(**fields))

    return _onboard


@pytest.fixture()
def onboard_vendor(backend: LocalBackend):
    def _onboard(session: Session, **overrides) -> VendorProfile:
        fields = {
            "company_name": "Rift Cement Ltd",
            "business_type": "Cement",
            "years_in_business": 12,
            "location": "Nakuru",
            "contact_person": "Grace Wanjiru",
            "phone": "+254700000002",
            "description": "Bulk cement and aggregates.",
        }
        fields.update(overrides)
        return submit_vendor(backend, session.user_id, VendorProfile(**fields))

    return _onboard


@pytest.fixture()
def tight_login_limit(monkeypatch):
    """Drop LOGIN_RATE_LIMIT to 2/minute with empty counters for one test."""
    monkeypatch.setattr(get_settings(), "login_rate_limit", "2/minute")
    limiter.reset()
    yield
    limiter.reset()
