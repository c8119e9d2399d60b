"""
tests/test_local_backend.py -- Tests for backend/local.py and backend/tokens.py.

Runs against the module-scoped in-memory LocalBackend from conftest.py.

Coverage:
  - sign_up / sign_in / sign_out / get_session round trips
  - Duplicate email, short password, wrong password -> AuthError
  - Revoked and forged tokens are rejected
  - JSON columns (profiles.roles, vendor_data) survive the round trip
  - upsert merges only the supplied columns
  - update / delete return matched counts and refuse empty filters
  - Identifier whitelist enforced before any SQL is built
"""

from __future__ import annotations

import pytest

from backend.client import AuthError, BackendError
from backend.tokens import create_access_token, decode_access_token, hash_password, verify_password
from helpers import PASSWORD


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_verify_against_garbage_hash(self) -> None:
        assert verify_password("x", "not-a-bcrypt-hash") is False


class TestTokens:
    def test_round_trip(self) -> None:
        token, expires_at = create_access_token("u-1", "a@example.com", "jti-1", expire_seconds=60)
        payload = decode_access_token(token)
        assert payload["sub"] == "u-1"
        assert payload["jti"] == "jti-1"
        assert expires_at > 0

    def test_tampered_token(self) -> None:
        token, _ = create_access_token("u-1", "a@example.com", "jti-1")
        assert decode_access_token(token[:-2] + "xx") is None


class TestAuth:
    def test_sign_up_then_sign_in(self, backend) -> None:
        created = backend.sign_up("  Ada@Example.com ", PASSWORD)
        assert created.email == "ada@example.com"
        session = backend.sign_in("ada@example.com", PASSWORD)
        assert session.user_id == created.user_id
        assert backend.get_session(session.access_token).user_id == created.user_id

    def test_duplicate_email(self, backend, make_user) -> None:
        session = make_user()
        with pytest.raises(AuthError):
            backend.sign_up(session.email, PASSWORD)

    def test_short_password(self, backend) -> None:
        with pytest.raises(AuthError, match="at least"):
            backend.sign_up("short@example.com", "123")

    def test_invalid_email(self, backend) -> None:
        with pytest.raises(AuthError):
            backend.sign_up("not-an-email", PASSWORD)

    def test_wrong_password_and_unknown_email_look_the_same(self, backend, make_user) -> None:
        session = make_user()
        with pytest.raises(AuthError) as wrong_pw:
            backend.sign_in(session.email, "wrong-password")
        with pytest.raises(AuthError) as unknown:
            backend.sign_in("nobody@example.com", PASSWORD)
        assert str(wrong_pw.value) == str(unknown.value)

    def test_sign_out_revokes_only_that_session(self, backend, make_user) -> None:
        first = make_user()
        second = backend.sign_in(first.email, PASSWORD)
        backend.sign_out(first.access_token)
        assert backend.get_session(first.access_token) is None
        assert backend.get_session(second.access_token) is not None

    def test_sign_out_with_garbage_token_is_a_no_op(self, backend) -> None:
        backend.sign_out("garbage")

    def test_token_without_server_session_is_rejected(self, backend, make_user) -> None:
        session = make_user()
        forged, _ = create_access_token(session.user_id, session.email, "never-issued")
        assert backend.get_session(forged) is None


class TestTables:
    def test_profile_json_columns_round_trip(self, backend, make_user) -> None:
        session = make_user()
        backend.upsert("profiles", {"id": session.user_id, "roles": ["vendor"], "vendor_data": {"company_name": "X"}})
        row = backend.select_one("profiles", {"id": session.user_id})
        assert row["roles"] == ["vendor"]
        assert row["vendor_data"] == {"company_name": "X"}
        assert row["created_at"]

    def test_upsert_merges_supplied_columns(self, backend, make_user) -> None:
        session = make_user()
        backend.upsert("profiles", {"id": session.user_id, "roles": ["homeowner"], "full_name": "Ada"})
        backend.upsert("profiles", {"id": session.user_id, "roles": ["homeowner", "vendor"]})
        row = backend.select_one("profiles", {"id": session.user_id})
        assert row["full_name"] == "Ada"
        assert row["roles"] == ["homeowner", "vendor"]

    def test_insert_generates_product_id(self, backend, make_user) -> None:
        vendor = make_user()
        row = backend.insert(
            "products", {"vendor_id": vendor.user_id, "name": "Nails", "price": 1.0, "category": "Hardware", "stock": 5}
        )
        assert row["id"]
        assert row["created_at"] and row["updated_at"]

    def test_profiles_need_explicit_id(self, backend) -> None:
        with pytest.raises(BackendError):
            backend.insert("profiles", {"roles": []})

    def test_update_and_delete_counts(self, backend, make_user) -> None:
        vendor = make_user()
        row = backend.insert(
            "products", {"vendor_id": vendor.user_id, "name": "Saw", "price": 8.0, "category": "Tools", "stock": 1}
        )
        assert backend.update("products", {"stock": 2}, {"id": row["id"], "vendor_id": "someone-else"}) == 0
        assert backend.update("products", {"stock": 2}, {"id": row["id"], "vendor_id": vendor.user_id}) == 1
        assert backend.delete("products", {"id": row["id"], "vendor_id": vendor.user_id}) == 1
        assert backend.delete("products", {"id": row["id"]}) == 0

    def test_unfiltered_update_and_delete_refused(self, backend) -> None:
        with pytest.raises(BackendError):
            backend.update("products", {"stock": 0}, {})
        with pytest.raises(BackendError):
            backend.delete("products", {})

    def test_select_orders_and_limits(self, backend, make_user) -> None:
        vendor = make_user()
        for name, created in (("old", "2024-01-01T00:00:00"), ("new", "2025-01-01T00:00:00")):
            backend.insert(
                "products",
                {
                    "vendor_id": vendor.user_id,
                    "name": name,
                    "price": 1.0,
                    "category": "Other",
                    "stock": 0,
                    "created_at": created,
                },
            )
        rows = backend.select("products", {"vendor_id": vendor.user_id}, order_by="created_at", descending=True)
        assert [r["name"] for r in rows] == ["new", "old"]
        assert len(backend.select("products", {"vendor_id": vendor.user_id}, limit=1)) == 1

    @pytest.mark.parametrize(
        "table, filters",
        [("users", {"id": "x"}), ("products", {"id; DROP TABLE products": "x"}), ("auth_sessions", {})],
    )
    def test_identifier_whitelist(self, backend, table, filters) -> None:
        with pytest.raises(BackendError):
            backend.select(table, filters)

    def test_ping(self, backend) -> None:
        assert backend.ping() is True
