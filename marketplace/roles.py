"""
marketplace/roles.py -- Role membership and onboarding state for a user.

Everything here is a thin read/merge/write over the backend collaborator:

  profiles.roles        list of roles the user has acquired
  profiles.vendor_data  vendor onboarding payload (None until submitted)
  professionals         one row per user who completed professional onboarding

Rules:
  - Only the closed set in core.models.ROLES is ever returned or written.
    Unknown values read back from storage are dropped, duplicates collapsed.
  - Homeowner is always onboarded. Professional and vendor require both
    membership in profiles.roles AND their payload.

save_user_role() is read-merge-write, not atomic. Two concurrent writers can
lose one another's update; the backend offers no transactions to prevent it.

Layer rule: imports core/ and backend/ only. Never imports from api/ or web/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from backend.client import BackendClient
from core.models import (
    HOMEOWNER,
    ONBOARDING_ROLES,
    PROFESSIONAL,
    ROLES,
    VENDOR,
    Profile,
    ProfessionalProfile,
    VendorProfile,
)

logger = logging.getLogger("skillink.marketplace.roles")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def normalize_roles(raw) -> list[str]:
    """Return valid roles from raw in first-seen order, without duplicates."""
    if not isinstance(raw, (list, tuple)):
        return []
    out: list[str] = []
    for role in raw:
        if role in ROLES and role not in out:
            out.append(role)
    return out


def _vendor_from(data) -> Optional[VendorProfile]:
    if not isinstance(data, dict) or not data.get("company_name"):
        return None
    return VendorProfile(
        company_name=data["company_name"],
        business_type=data.get("business_type", ""),
        years_in_business=int(data.get("years_in_business") or 0),
        location=data.get("location", ""),
        contact_person=data.get("contact_person", ""),
        phone=data.get("phone", ""),
        description=data.get("description", ""),
        created_at=data.get("created_at"),
    )


def _profile_from(row: dict) -> Profile:
    return Profile(
        id=row["id"],
        roles=normalize_roles(row.get("roles")),
        full_name=row.get("full_name"),
        avatar_url=row.get("avatar_url"),
        vendor_data=_vendor_from(row.get("vendor_data")),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def professional_from(row: dict) -> ProfessionalProfile:
    return ProfessionalProfile(
        id=row.get("id"),
        full_name=row.get("full_name", ""),
        profession_type=row.get("profession_type", ""),
        experience=int(row.get("experience") or 0),
        location=row.get("location", ""),
        phone=row.get("phone", ""),
        bio=row.get("bio", ""),
        profile_picture=row.get("profile_picture"),
        created_at=row.get("created_at"),
    )


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


def get_profile(backend: BackendClient, user_id: str) -> Optional[Profile]:
    """Return the user's profile, or None if it has never been written."""
    row = backend.select_one("profiles", {"id": user_id})
    return _profile_from(row) if row else None


def get_user_roles(backend: BackendClient, user_id: str) -> list[str]:
    """Return the user's acquired roles (empty if no profile exists)."""
    profile = get_profile(backend, user_id)
    return profile.roles if profile else []


def get_professional(backend: BackendClient, user_id: str) -> Optional[ProfessionalProfile]:
    row = backend.select_one("professionals", {"id": user_id})
    return professional_from(row) if row else None


def get_vendor_data(backend: BackendClient, user_id: str) -> Optional[VendorProfile]:
    profile = get_profile(backend, user_id)
    return profile.vendor_data if profile else None


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


def save_user_role(backend: BackendClient, user_id: str, role: str) -> list[str]:
    """Add role to the user's profile (creating the profile if needed).

    Returns the resulting role list. Raises ValueError for a role outside
    the closed set and BackendError if either backend call fails.
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    roles = get_user_roles(backend, user_id)
    if role in roles:
        return roles
    roles.append(role)
    backend.upsert(
        "profiles",
        {"id": user_id, "roles": roles, "updated_at": datetime.now(timezone.utc).isoformat()},
    )
    logger.info("User %s acquired role %s", user_id, role)
    return roles


# ---------------------------------------------------------------------------
# Onboarding state
# ---------------------------------------------------------------------------


def has_completed_onboarding(
    backend: BackendClient,
    user_id: str,
    role: str,
    roles: Optional[list[str]] = None,
) -> bool:
    """Return True when role is acquired and its onboarding payload exists.

    Pass roles when the caller already holds the user's role list to save a
    backend round trip.
    """
    if role == HOMEOWNER:
        return True
    if role not in ONBOARDING_ROLES:
        return False
    if roles is None:
        roles = get_user_roles(backend, user_id)
    if role not in roles:
        return False
    if role == PROFESSIONAL:
        return get_professional(backend, user_id) is not None
    if role == VENDOR:
        return get_vendor_data(backend, user_id) is not None
    return False

