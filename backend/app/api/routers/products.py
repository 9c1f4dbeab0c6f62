"""CRUD + filtering endpoints for the product catalog."""

from __future__ import annotations

import io
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies.params import parse_params
from app.api.dependencies.services import get_catalog_service, get_images
from app.api.schemas.product import (
    ProductCreate,
    ProductFilters,
    ProductListResponse,
    ProductRead,
    ProductUpdate,
)
from app.core.exceptions import ValidationError
from app.services.catalog_service import CatalogService
from app.storage.image_storage import ALLOWED_IMAGE_TYPES, MAX_IMAGE_BYTES, ImageStorage

logger = logging.getLogger(__name__)

router = APIRouter()


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Database error while trying to {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.get(
    "/",
    summary="List products with filters and pagination",
    response_model=ProductListResponse,
)
def list_products(
    category: str | None = Query(None, description="Exact category match"),
    status_filter: str | None = Query(None, alias="status", description="active or inactive"),
    min_price: Decimal | None = Query(None, description="Minimum price (inclusive)"),
    max_price: Decimal | None = Query(None, description="Maximum price (inclusive)"),
    search: str | None = Query(None, description="Substring match on name, description or SKU"),
    sort_by: str | None = Query(None, description="price, created_at or name"),
    sort_order: str | None = Query(None, description="asc or desc"),
    page: int | None = Query(None, description="Page number (1-indexed)"),
    per_page: int | None = Query(None, description="Items per page (1-100)"),
    with_trashed: bool = Query(False, description="Include soft-deleted products"),
    service: CatalogService = Depends(get_catalog_service),
) -> ProductListResponse:
    """Return a page of products, newest first unless another sort is requested."""
    filters = parse_params(
        ProductFilters,
        category=category,
        status=status_filter,
        min_price=min_price,
        max_price=max_price,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        per_page=per_page,
        with_trashed=with_trashed,
    )
    try:
        return service.list(filters)
    except SQLAlchemyError as e:
        raise _internal_error("list products", e) from e


@router.post(
    "/",
    summary="Create a product",
    status_code=status.HTTP_201_CREATED,
    response_model=ProductRead,
)
def create_product(
    payload: ProductCreate,
    service: CatalogService = Depends(get_catalog_service),
) -> ProductRead:
    try:
        return service.create(payload)
    except SQLAlchemyError as e:
        raise _internal_error("create product", e) from e


@router.get(
    "/{product_id}",
    summary="Show a single product",
    response_model=ProductRead,
)
def show_product(
    product_id: str,
    with_trashed: bool = Query(False, description="Return the product even if soft-deleted"),
    service: CatalogService = Depends(get_catalog_service),
) -> ProductRead:
    try:
        return service.show(product_id, with_trashed=with_trashed)
    except SQLAlchemyError as e:
        raise _internal_error("retrieve product", e) from e


@router.api_route(
    "/{product_id}",
    methods=["PUT", "PATCH"],
    summary="Update an existing product (partial)",
    response_model=ProductRead,
)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    service: CatalogService = Depends(get_catalog_service),
) -> ProductRead:
    """Apply only the fields present in the payload."""
    try:
        return service.update(product_id, payload)
    except SQLAlchemyError as e:
        raise _internal_error("update product", e) from e


@router.delete(
    "/{product_id}",
    summary="Delete product (soft delete)",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_product(
    product_id: str,
    service: CatalogService = Depends(get_catalog_service),
) -> Response:
    """Soft delete a product; it stays retrievable with ``with_trashed``."""
    try:
        service.delete(product_id)
    except SQLAlchemyError as e:
        raise _internal_error("delete product", e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{product_id}/restore",
    summary="Restore a soft-deleted product",
    response_model=ProductRead,
)
def restore_product(
    product_id: str,
    service: CatalogService = Depends(get_catalog_service),
) -> ProductRead:
    try:
        return service.restore(product_id)
    except SQLAlchemyError as e:
        raise _internal_error("restore product", e) from e


@router.delete(
    "/{product_id}/purge",
    summary="Permanently delete a product",
    status_code=status.HTTP_204_NO_CONTENT,
)
def purge_product(
    product_id: str,
    service: CatalogService = Depends(get_catalog_service),
) -> Response:
    try:
        service.purge(product_id)
    except SQLAlchemyError as e:
        raise _internal_error("purge product", e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{product_id}/image",
    summary="Upload a product image",
    response_model=ProductRead,
)
def upload_product_image(
    product_id: str,
    image: UploadFile = File(...),
    service: CatalogService = Depends(get_catalog_service),
    images: ImageStorage = Depends(get_images),
) -> ProductRead:
    """Store a JPEG/PNG image (max 2 MB) and record its public URL."""
    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            "Unsupported image type",
            errors={"image": ["Only jpeg and png images are accepted"]},
        )
    content = image.file.read(MAX_IMAGE_BYTES + 1)
    if len(content) > MAX_IMAGE_BYTES:
        raise ValidationError(
            "Image too large", errors={"image": ["Image must not exceed 2 MB"]}
        )

    # 404 before anything touches the disk
    service.show(product_id, with_trashed=True)

    try:
        path, url = images.save(io.BytesIO(content), image.content_type)
    except OSError as e:
        logger.error(f"Failed to store image for product {product_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store image",
        ) from e

    try:
        return service.attach_image(product_id, url)
    except Exception:
        images.delete(path)
        raise
