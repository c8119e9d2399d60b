"""
marketplace/catalog.py -- Vendor product CRUD and the homeowner browse views.

Ownership is enforced by the query, not by a separate check: every read and
write on a vendor's products carries vendor_id == <authenticated user id> as
an equality filter. A product owned by someone else is simply not matched,
so update_product() and delete_product() return False for it.

Browse filtering (search text, category, profession) runs in Python over the
full result set. The backend offers equality filters only and the catalog is
small; there is no ranking.

Layer rule: imports core/, backend/ and marketplace/ only.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from backend.client import BackendClient
from core.models import PRODUCT_CATEGORIES, Product, ProfessionalProfile
from marketplace.roles import professional_from

logger = logging.getLogger("skillink.marketplace.catalog")

DEFAULT_CATEGORY = "Other"


# ---------------------------------------------------------------------------
# Mapping / validation
# ---------------------------------------------------------------------------


def product_from(row: dict) -> Product:
    return Product(
        id=row.get("id"),
        vendor_id=row["vendor_id"],
        name=row.get("name", ""),
        description=row.get("description"),
        price=float(row.get("price") or 0),
        category=row.get("category") or DEFAULT_CATEGORY,
        stock=int(row.get("stock") or 0),
        image_url=row.get("image_url"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def validate_product(form: dict) -> tuple[dict, dict[str, str]]:
    """Validate product form input.

    Returns (values, errors). values holds the cleaned columns whenever the
    corresponding field parsed; errors maps field -> message and is empty
    when the whole form is valid. Unknown categories become "Other".
    """
    errors: dict[str, str] = {}
    values: dict = {}

    name = str(form.get("name") or "").strip()
    if not name:
        errors["name"] = "Product name is required"
    values["name"] = name

    values["description"] = str(form.get("description") or "").strip() or None

    try:
        price = float(str(form.get("price", "")).strip())
        if not math.isfinite(price) or price < 0:
            raise ValueError
        values["price"] = round(price, 2)
    except ValueError:
        errors["price"] = "Price must be a non-negative number"

    try:
        stock = int(str(form.get("stock", "0") or "0").strip())
        if stock < 0:
            raise ValueError
        values["stock"] = stock
    except ValueError:
        errors["stock"] = "Stock must be a non-negative whole number"

    category = str(form.get("category") or "").strip()
    values["category"] = category if category in PRODUCT_CATEGORIES else DEFAULT_CATEGORY

    values["image_url"] = str(form.get("image_url") or "").strip() or None
    return values, errors


# ---------------------------------------------------------------------------
# Vendor CRUD (scoped by vendor_id)
# ---------------------------------------------------------------------------


def list_vendor_products(backend: BackendClient, vendor_id: str) -> list[Product]:
    """Return the vendor's products, newest first."""
    rows = backend.select("products", {"vendor_id": vendor_id}, order_by="created_at", descending=True)
    return [product_from(r) for r in rows]


def get_vendor_product(backend: BackendClient, vendor_id: str, product_id: str) -> Optional[Product]:
    row = backend.select_one("products", {"id": product_id, "vendor_id": vendor_id})
    return product_from(row) if row else None


def create_product(backend: BackendClient, vendor_id: str, values: dict) -> Product:
    row = backend.insert("products", {**values, "vendor_id": vendor_id})
    logger.info("Vendor %s created product %s", vendor_id, row.get("id"))
    return product_from(row)


def update_product(backend: BackendClient, vendor_id: str, product_id: str, values: dict) -> bool:
    """Update one of the vendor's products. False when no owned product matched."""
    values = {k: v for k, v in values.items() if k not in ("id", "vendor_id", "created_at")}
    if not values:
        return get_vendor_product(backend, vendor_id, product_id) is not None
    matched = backend.update("products", values, {"id": product_id, "vendor_id": vendor_id})
    if matched:
        logger.info("Vendor %s updated product %s", vendor_id, product_id)
    return matched > 0


def delete_product(backend: BackendClient, vendor_id: str, product_id: str) -> bool:
    """Hard-delete one of the vendor's products. False when no owned product matched."""
    deleted = backend.delete("products", {"id": product_id, "vendor_id": vendor_id})
    if deleted:
        logger.info("Vendor %s deleted product %s", vendor_id, product_id)
    return deleted > 0


# ---------------------------------------------------------------------------
# Browse (homeowner)
# ---------------------------------------------------------------------------


def list_all_products(backend: BackendClient) -> list[Product]:
    return [product_from(r) for r in backend.select("products", order_by="created_at", descending=True)]


def vendor_names(backend: BackendClient) -> dict[str, str]:
    """Map vendor id -> company name from the public vendors directory."""
    return {r["id"]: r.get("company_name", "") for r in backend.select("vendors", order_by=None)}


def filter_products(products: list[Product], search: str = "", category: str = "all") -> list[Product]:
    """Filter by category (exact) and search text over name, description and category."""
    results = products
    if category and category != "all":
        results = [p for p in results if p.category == category]
    term = search.strip().lower()
    if term:
        results = [
            p
            for p in results
            if term in p.name.lower() or term in (p.description or "").lower() or term in p.category.lower()
        ]
    return results


def product_categories(products: list[Product]) -> list[str]:
    """Distinct categories present in products, sorted."""
    return sorted({p.category for p in products})


def list_professionals(backend: BackendClient) -> list[ProfessionalProfile]:
    return [professional_from(r) for r in backend.select("professionals", order_by="created_at", descending=True)]


def filter_professionals(
    professionals: list[ProfessionalProfile], search: str = "", profession: str = "all"
) -> list[ProfessionalProfile]:
    """Filter by profession type (exact) and search text over name, profession, location and bio."""
    results = professionals
    if profession and profession != "all":
        results = [p for p in results if p.profession_type == profession]
    term = search.strip().lower()
    if term:
        results = [
            p
            for p in results
            if any(term in field.lower() for field in (p.full_name, p.profession_type, p.location, p.bio))
        ]
    return results
