"""
marketplace/onboarding.py -- Professional and vendor onboarding: validation and submission.

Onboarding is a one-time form per role. Submitting it writes the role's
payload keyed by the user id, then marks the role acquired:

  professional  -> upsert into professionals
  vendor        -> upsert profiles.vendor_data (other profile fields kept)
                   + upsert the public directory row in vendors

Validation returns a {field: message} dict so the form can render each
message next to its field. An empty dict means the form is valid.

Submission is a sequence of independent backend calls with no transaction.
A failure part-way through raises BackendError and may leave the payload
written without the role, which the next submission simply overwrites.

Layer rule: imports core/, backend/ and marketplace/ only.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from backend.client import BackendClient
from core.models import (
    BUSINESS_TYPES,
    PROFESSION_TYPES,
    PROFESSIONAL,
    VENDOR,
    ProfessionalProfile,
    VendorProfile,
)
from marketplace.roles import save_user_role

logger = logging.getLogger("skillink.marketplace.onboarding")

PROFESSIONAL_FIELDS: tuple[str, ...] = ("full_name", "profession_type", "experience", "location", "phone", "bio")
VENDOR_FIELDS: tuple[str, ...] = (
    "company_name",
    "business_type",
    "years_in_business",
    "location",
    "contact_person",
    "phone",
    "description",
)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _parse_count(raw) -> Optional[int]:
    """Parse a non-negative whole number from form input. None if invalid."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def _required(form: dict, field: str, message: str, errors: dict[str, str]) -> str:
    value = str(form.get(field) or "").strip()
    if not value:
        errors[field] = message
    return value


def validate_professional(form: dict) -> tuple[Optional[ProfessionalProfile], dict[str, str]]:
    """Validate professional onboarding input.

    Returns (profile, {}) when valid, (None, errors) otherwise.
    """
    errors: dict[str, str] = {}
    full_name = _required(form, "full_name", "Full name is required", errors)
    profession_type = _required(form, "profession_type", "Profession type is required", errors)
    if profession_type and profession_type not in PROFESSION_TYPES:
        errors["profession_type"] = "Choose a profession type from the list"
    experience = _parse_count(form.get("experience"))
    if experience is None:
        errors["experience"] = "Experience must be a non-negative whole number"
    location = _required(form, "location", "Location is required", errors)
    phone = _required(form, "phone", "Phone number is required", errors)
    bio = _required(form, "bio", "Bio is required", errors)
    if errors:
        return None, errors
    return (
        ProfessionalProfile(
            full_name=full_name,
            profession_type=profession_type,
            experience=experience,
            location=location,
            phone=phone,
            bio=bio,
        ),
        {},
    )


def validate_vendor(form: dict) -> tuple[Optional[VendorProfile], dict[str, str]]:
    """Validate vendor onboarding input.

    Returns (vendor, {}) when valid, (None, errors) otherwise.
    """
    errors: dict[str, str] = {}
    company_name = _required(form, "company_name", "Company name is required", errors)
    business_type = _required(form, "business_type", "Business type is required", errors)
    if business_type and business_type not in BUSINESS_TYPES:
        errors["business_type"] = "Choose a business type from the list"
    years = _parse_count(form.get("years_in_business"))
    if years is None:
        errors["years_in_business"] = "Years in business must be a non-negative whole number"
    location = _required(form, "location", "Location is required", errors)
    contact_person = _required(form, "contact_person", "Contact person is required", errors)
    phone = _required(form, "phone", "Phone number is required", errors)
    description = _required(form, "description", "Description is required", errors)
    if errors:
        return None, errors
    return (
        VendorProfile(
            company_name=company_name,
            business_type=business_type,
            years_in_business=years,
            location=location,
            contact_person=contact_person,
            phone=phone,
            description=description,
        ),
        {},
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def submit_professional(backend: BackendClient, user_id: str, profile: ProfessionalProfile) -> ProfessionalProfile:
    """Write the professional record and acquire the professional role."""
    now = datetime.now(timezone.utc).isoformat()
    row = {
        "id": user_id,
        "full_name": profile.full_name,
        "profession_type": profile.profession_type,
        "experience": profile.experience,
        "location": profile.location,
        "phone": profile.phone,
        "bio": profile.bio,
        "created_at": profile.created_at or now,
    }
    backend.upsert("professionals", row)
    save_user_role(backend, user_id, PROFESSIONAL)
    logger.info("Professional onboarding completed for user %s", user_id)
    profile.id = user_id
    profile.created_at = row["created_at"]
    return profile


def submit_vendor(backend: BackendClient, user_id: str, vendor: VendorProfile) -> VendorProfile:
    """Write vendor_data onto the profile, mirror the directory row, acquire the vendor role.

    The profile is read first so its existing columns (roles, full_name,
    avatar_url) survive; only vendor_data and updated_at are replaced.
    """
    now = datetime.now(timezone.utc).isoformat()
    vendor.created_at = vendor.created_at or now
    payload = {
        "company_name": vendor.company_name,
        "business_type": vendor.business_type,
        "years_in_business": vendor.years_in_business,
        "location": vendor.location,
        "contact_person": vendor.contact_person,
        "phone": vendor.phone,
        "description": vendor.description,
        "created_at": vendor.created_at,
    }

    existing = backend.select_one("profiles", {"id": user_id}) or {}
    profile_row = {
        "id": user_id,
        "roles": existing.get("roles") or [],
        "full_name": existing.get("full_name") or vendor.contact_person,
        "avatar_url": existing.get("avatar_url"),
        "vendor_data": payload,
        "updated_at": now,
    }
    backend.upsert("profiles", profile_row)
    backend.upsert("vendors", {"id": user_id, **payload})
    save_user_role(backend, user_id, VENDOR)
    logger.info("Vendor onboarding completed for user %s", user_id)
    return vendor
