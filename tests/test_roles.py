"""
tests/test_roles.py -- Tests for marketplace/roles.py.

Coverage:
  - normalize_roles drops unknown values and duplicates, keeps order
  - save_user_role creates the profile, appends without duplicates, rejects unknown roles
  - save_user_role keeps other profile columns intact
  - has_completed_onboarding: homeowner always, professional/vendor need role + payload
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from core.models import HOMEOWNER, PROFESSIONAL, VENDOR
from marketplace.roles import (
    get_profile,
    get_user_roles,
    get_vendor_data,
    has_completed_onboarding,
    normalize_roles,
    save_user_role,
)


class TestNormalizeRoles:
    def test_filters_unknown_and_duplicates(self) -> None:
        assert normalize_roles(["vendor", "admin", "homeowner", "vendor"]) == [VENDOR, HOMEOWNER]

    @pytest.mark.parametrize("raw", [None, "vendor", {"vendor": True}, 3])
    def test_non_list_is_empty(self, raw) -> None:
        assert normalize_roles(raw) == []


class TestSaveUserRole:
    def test_creates_profile_for_first_role(self, backend, make_user) -> None:
        session = make_user()
        assert get_profile(backend, session.user_id) is None
        assert save_user_role(backend, session.user_id, HOMEOWNER) == [HOMEOWNER]
        assert get_user_roles(backend, session.user_id) == [HOMEOWNER]

    def test_appends_in_order_without_duplicates(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        save_user_role(backend, session.user_id, VENDOR)
        save_user_role(backend, session.user_id, HOMEOWNER)
        assert get_user_roles(backend, session.user_id) == [HOMEOWNER, VENDOR]

    def test_unknown_role_raises_before_any_write(self, backend, make_user) -> None:
        session = make_user()
        with pytest.raises(ValueError):
            save_user_role(backend, session.user_id, "admin")
        assert get_profile(backend, session.user_id) is None

    def test_keeps_vendor_data(self, backend, make_user, onboard_vendor) -> None:
        session = make_user()
        onboard_vendor(session)
        save_user_role(backend, session.user_id, HOMEOWNER)
        assert get_vendor_data(backend, session.user_id).company_name == "Rift Cement Ltd"
        assert get_user_roles(backend, session.user_id) == [VENDOR, HOMEOWNER]

    def test_existing_role_skips_the_write(self) -> None:
        backend = MagicMock()
        backend.select_one.return_value = {"id": "u1", "roles": [HOMEOWNER]}
        assert save_user_role(backend, "u1", HOMEOWNER) == [HOMEOWNER]
        backend.upsert.assert_not_called()


class TestHasCompletedOnboarding:
    def test_homeowner_is_always_onboarded(self, backend, make_user) -> None:
        session = make_user()
        assert has_completed_onboarding(backend, session.user_id, HOMEOWNER) is True

    def test_professional_needs_role_and_record(self, backend, make_user, onboard_professional) -> None:
        session = make_user(PROFESSIONAL)
        assert has_completed_onboarding(backend, session.user_id, PROFESSIONAL) is False
        onboard_professional(session)
        assert has_completed_onboarding(backend, session.user_id, PROFESSIONAL) is True

    def test_vendor_needs_payload(self, backend, make_user, onboard_vendor) -> None:
        session = make_user(VENDOR)
        assert has_completed_onboarding(backend, session.user_id, VENDOR) is False
        onboard_vendor(session)
        assert has_completed_onboarding(backend, session.user_id, VENDOR) is True

    def test_payload_without_role_is_not_onboarded(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        backend.upsert(
            "professionals",
            {
                "id": session.user_id,
                "full_name": "Orphan Record",
                "profession_type": "Plumber",
                "experience": 2,
                "location": "Mombasa",
                "phone": "0700",
                "bio": "Left behind by a failed submission.",
            },
        )
        assert has_completed_onboarding(backend, session.user_id, PROFESSIONAL) is False

    def test_unknown_role_is_not_onboarded(self, backend, make_user) -> None:
        session = make_user(HOMEOWNER)
        assert has_completed_onboarding(backend, session.user_id, "admin") is False

    def test_supplied_roles_skip_the_profile_read(self) -> None:
        backend = MagicMock()
        backend.select_one.return_value = None
        assert has_completed_onboarding(backend, "u1", VENDOR, roles=[HOMEOWNER]) is False
        backend.select_one.assert_not_called()
