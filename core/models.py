"""
core/models.py -- Domain dataclasses and fixed vocabularies for Skillink.

These are pure data containers with zero logic. Role rules (membership,
onboarding completion) live in marketplace/roles.py; redirect precedence
lives in auth/guard.py.

Rows come back from the backend collaborator as plain dicts. The marketplace
layer maps them onto these dataclasses (Data Mapper), so routes and templates
never depend on column names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

HOMEOWNER = "homeowner"
PROFESSIONAL = "professional"
VENDOR = "vendor"

# Closed set, in display order.
ROLES: tuple[str, ...] = (HOMEOWNER, PROFESSIONAL, VENDOR)

# Roles that must complete a one-time onboarding form before their dashboard.
ONBOARDING_ROLES: frozenset[str] = frozenset({PROFESSIONAL, VENDOR})

ROLE_LABELS: dict[str, str] = {
    HOMEOWNER: "Homeowner",
    PROFESSIONAL: "Professional",
    VENDOR: "Vendor",
}

ROLE_DESCRIPTIONS: dict[str, str] = {
    HOMEOWNER: "Find and book professionals for your projects",
    PROFESSIONAL: "Offer your services to homeowners",
    VENDOR: "Sell materials and supplies to professionals",
}

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

PROFESSION_TYPES: tuple[str, ...] = (
    "Civil Engineer",
    "Architect",
    "Interior Designer",
    "Structural Engineer",
    "Project Manager",
    "Contractor",
    "Electrician",
    "Plumber",
    "Carpenter",
    "Mason",
    "Painter",
    "Landscaper",
    "HVAC Specialist",
    "Other",
)

BUSINESS_TYPES: tuple[str, ...] = (
    "Cement",
    "Steel",
    "Timber",
    "Glass",
    "Electrical",
    "Plumbing",
    "Hardware",
    "Tools",
    "Paint",
    "Flooring",
    "Roofing",
    "Insulation",
    "Solar",
    "Other",
)

PRODUCT_CATEGORIES: tuple[str, ...] = (
    "Hardware",
    "Tools",
    "Lumber",
    "Electrical",
    "Plumbing",
    "Paint",
    "Flooring",
    "Other",
)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Session:
    """An authenticated session issued by the backend auth service.

    access_token is opaque to the application: it is stored in an httpOnly
    cookie and handed back to the backend on every call. expires_at is a UNIX
    timestamp when the backend reports one.
    """

    access_token: str
    user_id: str
    email: str
    expires_at: Optional[int] = None


@dataclass
class Profile:
    """Cross-role profile record, keyed by the user id.

    vendor_data is None until vendor onboarding has been submitted.
    """

    id: str
    roles: list[str] = field(default_factory=list)
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    vendor_data: Optional[VendorProfile] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class ProfessionalProfile:
    """Onboarding payload for the professional role (`professionals` row)."""

    full_name: str
    profession_type: str
    experience: int  # years
    location: str
    phone: str
    bio: str
    id: Optional[str] = None  # user id, set on upsert
    profile_picture: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class VendorProfile:
    """Onboarding payload for the vendor role, embedded in profiles.vendor_data."""

    company_name: str
    business_type: str
    years_in_business: int
    location: str
    contact_person: str
    phone: str
    description: str
    created_at: Optional[str] = None


@dataclass
class Product:
    """A vendor-owned catalog entry.

    id is None before the record is written. vendor_id is always the owning
    vendor's user id -- every query on products filters by it.
    """

    vendor_id: str
    name: str
    category: str
    price: float
    stock: int
    id: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
