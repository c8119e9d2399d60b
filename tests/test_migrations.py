"""
tests/test_migrations.py -- Tests for backend/migrations.py and the startup schema check.

Each test gets its own empty in-memory database so versions start at 0.

Coverage:
  - upgrade() applies every migration in order and is idempotent
  - upgrade(target=N) stops at N; a later upgrade continues from there
  - Databases created before profiles.roles / vendor_data existed keep their rows
  - ensure_schema() refuses a behind schema unless auto_migrate is set
  - The CLI migrate / status commands
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import text

from backend import migrations
from backend.client import BackendError
from backend.factory import ensure_schema
from backend.local import LocalBackend


@pytest.fixture()
def empty_backend():
    backend = LocalBackend(f"sqlite:///file:migrations_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield backend
    backend.close()


class TestUpgrade:
    def test_empty_database_is_version_zero(self, empty_backend) -> None:
        assert migrations.current_version(empty_backend.engine) == 0
        assert len(migrations.pending(empty_backend.engine)) == len(migrations.MIGRATIONS)

    def test_upgrade_applies_everything_once(self, empty_backend) -> None:
        applied = migrations.upgrade(empty_backend.engine)
        assert applied == [m.version for m in migrations.MIGRATIONS]
        assert migrations.current_version(empty_backend.engine) == migrations.LATEST_VERSION
        assert migrations.upgrade(empty_backend.engine) == []

    def test_versions_are_strictly_increasing(self) -> None:
        versions = [m.version for m in migrations.MIGRATIONS]
        assert versions == sorted(set(versions))
        assert migrations.LATEST_VERSION == versions[-1]

    def test_partial_upgrade_then_continue(self, empty_backend) -> None:
        assert migrations.upgrade(empty_backend.engine, target=1) == [1]
        with empty_backend.engine.begin() as conn:
            conn.execute(
                text("INSERT INTO profiles (id, full_name, created_at) VALUES ('u-1', 'Early User', '2024-01-01')")
            )
        migrations.upgrade(empty_backend.engine)
        row = empty_backend.select_one("profiles", {"id": "u-1"})
        assert row["full_name"] == "Early User"
        assert row["roles"] == []
        assert row["vendor_data"] is None


class TestEnsureSchema:
    def test_behind_schema_refuses_to_start(self, empty_backend) -> None:
        with pytest.raises(BackendError, match="migrate"):
            ensure_schema(empty_backend)

    def test_auto_migrate_upgrades(self, empty_backend) -> None:
        ensure_schema(empty_backend, auto_migrate=True)
        assert migrations.current_version(empty_backend.engine) == migrations.LATEST_VERSION

    def test_current_schema_passes(self, backend) -> None:
        ensure_schema(backend)

    def test_non_local_backend_is_not_checked(self) -> None:
        ensure_schema(object())


class TestCli:
    def test_migrate_and_status(self, monkeypatch, capsys) -> None:
        import main
        from core.config import get_settings

        url = f"sqlite:///file:cli_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
        keeper = LocalBackend(url)
        keeper.ping()  # holds the shared in-memory database open between commands
        monkeypatch.setenv("DATABASE_URL", url)
        get_settings.cache_clear()
        try:
            assert main.main(["status"]) == 3
            assert main.main(["migrate"]) == 0
            assert main.main(["status"]) == 0
            out = capsys.readouterr().out
            assert f"Current version: {migrations.LATEST_VERSION}" in out
            assert main.main(["create-user", "cli@example.com", "--password", "secret123", "--role", "homeowner"]) == 0
            assert keeper.select_one("profiles", {})["roles"] == ["homeowner"]
        finally:
            get_settings.cache_clear()
            keeper.close()
