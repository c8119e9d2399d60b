"""
api/routes/v1/products.py -- Vendor catalog REST endpoints.

Routes:
  GET    /api/v1/products        -- the caller's products, newest first
  POST   /api/v1/products        -- create a product owned by the caller
  PATCH  /api/v1/products/{id}   -- update one of the caller's products
  DELETE /api/v1/products/{id}   -- hard-delete one of the caller's products

All routes require an onboarded vendor (require_vendor). Ownership is the
vendor_id filter applied by marketplace.catalog: another vendor's product
id matches no row and returns 404, never 403, so ids cannot be probed.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import ErrorDetail, ProductCreate, ProductResponse, ProductUpdate
from auth.dependencies import get_backend, require_vendor
from backend.client import BackendClient, BackendError
from core.models import Session
from marketplace.catalog import (
    create_product,
    delete_product,
    get_vendor_product,
    list_vendor_products,
    update_product,
)

logger = logging.getLogger("skillink.api.products")

router = APIRouter()

_NULLABLE = frozenset({"description", "image_url"})


def _vendor_backend(request: Request, session: Session) -> BackendClient:
    return get_backend(request).as_user(session.access_token)


def _unavailable(exc: BackendError) -> HTTPException:
    logger.warning("Product operation failed: %s", exc)
    return HTTPException(
        status_code=503,
        detail=ErrorDetail(code="backend_unavailable", message="Backend unavailable.").model_dump(),
    )


def _not_found(product_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="not_found", message=f"Product {product_id} not found.").model_dump(),
    )


@router.get("/products", response_model=list[ProductResponse])
def list_products(request: Request, session: Session = Depends(require_vendor)) -> list[ProductResponse]:
    try:
        products = list_vendor_products(_vendor_backend(request, session), session.user_id)
    except BackendError as exc:
        raise _unavailable(exc) from exc
    return [ProductResponse.from_product(p) for p in products]


@router.post("/products", response_model=ProductResponse, status_code=201)
def create(request: Request, body: ProductCreate, session: Session = Depends(require_vendor)) -> ProductResponse:
    try:
        product = create_product(_vendor_backend(request, session), session.user_id, body.model_dump())
    except BackendError as exc:
        raise _unavailable(exc) from exc
    return ProductResponse.from_product(product)


@router.patch("/products/{product_id}", response_model=ProductResponse)
def update(
    request: Request,
    product_id: str,
    body: ProductUpdate,
    session: Session = Depends(require_vendor),
) -> ProductResponse:
    backend = _vendor_backend(request, session)
    # Explicit nulls only clear the optional text columns.
    changes = {
        k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None or k in _NULLABLE
    }
    try:
        if not update_product(backend, session.user_id, product_id, changes):
            raise _not_found(product_id)
        product = get_vendor_product(backend, session.user_id, product_id)
    except BackendError as exc:
        raise _unavailable(exc) from exc
    if product is None:
        raise _not_found(product_id)
    return ProductResponse.from_product(product)


@router.delete("/products/{product_id}", status_code=204)
def delete(request: Request, product_id: str, session: Session = Depends(require_vendor)) -> Response:
    try:
        deleted = delete_product(_vendor_backend(request, session), session.user_id, product_id)
    except BackendError as exc:
        raise _unavailable(exc) from exc
    if not deleted:
        raise _not_found(product_id)
    return Response(status_code=204)
