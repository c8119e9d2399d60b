"""
API request and response models for Skillink REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are separate from the dataclasses in core/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: core/ models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models import PRODUCT_CATEGORIES, Product

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    homeowner = "homeowner"
    professional = "professional"
    vendor = "vendor"


def _known_category(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value if value in PRODUCT_CATEGORIES else "Other"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Credentials for POST /api/v1/auth/login. The password is passed on exactly as typed."""

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=1024)

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: Optional[int] = None
    user_id: str
    email: str
    roles: list[RoleEnum] = Field(default_factory=list)


class MeResponse(BaseModel):
    """Identity of the caller plus the roles acquired on their profile."""

    user_id: str
    email: str
    roles: list[RoleEnum] = Field(default_factory=list)
    onboarded: dict[str, bool] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class ProductCreate(BaseModel):
    """Request body for POST /api/v1/products.

    Unknown categories are folded into "Other" rather than rejected, matching
    the web form.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: float = Field(ge=0, allow_inf_nan=False)
    category: str = Field(default="Other", max_length=50)
    stock: int = Field(default=0, ge=0)
    image_url: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("category")
    @classmethod
    def fold_category(cls, v: str) -> str:
        return _known_category(v)


class ProductUpdate(BaseModel):
    """Request body for PATCH /api/v1/products/{id}. Only supplied fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    category: Optional[str] = Field(default=None, max_length=50)
    stock: Optional[int] = Field(default=None, ge=0)
    image_url: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("category")
    @classmethod
    def fold_category(cls, v: Optional[str]) -> Optional[str]:
        return _known_category(v)


class ProductResponse(BaseModel):
    id: str
    vendor_id: str
    name: str
    description: Optional[str] = None
    price: float
    category: str
    stock: int
    image_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls(
            id=product.id,
            vendor_id=product.vendor_id,
            name=product.name,
            description=product.description,
            price=product.price,
            category=product.category,
            stock=product.stock,
            image_url=product.image_url,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Structured error body. code is machine-readable; message is for humans."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope for every 4xx/5xx JSON response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health.

    status is "ok" when the backend collaborator answers its ping, "degraded"
    otherwise. The endpoint itself always returns 200 so load balancers can
    tell a live process from a dead one.
    """

    status: str = "ok"
    version: str
    backend: str
    backend_ok: bool
