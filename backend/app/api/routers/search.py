"""Full-text product search with transparent database fallback."""

from __future__ import annotations

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies.params import parse_params
from app.api.dependencies.services import get_search_service
from app.api.schemas.product import ProductListResponse, SearchParams
from app.services.search_service import SearchService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/products",
    summary="Search products",
    response_model=ProductListResponse,
)
def search_products(
    q: str | None = Query(None, description="Free text matched against name, description and SKU"),
    category: str | None = Query(None, description="Exact category match"),
    status_filter: str | None = Query(None, alias="status", description="active or inactive"),
    min_price: Decimal | None = Query(None, description="Minimum price (inclusive)"),
    max_price: Decimal | None = Query(None, description="Maximum price (inclusive)"),
    sort: str | None = Query(None, description="price or created_at"),
    order: str | None = Query(None, description="asc or desc"),
    page: int | None = Query(None, description="Page number (1-indexed)"),
    per_page: int | None = Query(None, description="Items per page (1-100)"),
    service: SearchService = Depends(get_search_service),
) -> ProductListResponse:
    """Search the index; when it is unreachable the response has ``degraded=true``."""
    params = parse_params(
        SearchParams,
        q=q,
        category=category,
        status=status_filter,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        order=order,
        page=page,
        per_page=per_page,
    )
    try:
        return service.search(params)
    except SQLAlchemyError as e:
        logger.error(f"Database error during search: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search products",
        ) from e
