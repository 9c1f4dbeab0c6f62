"""Pydantic models describing Product payloads, filters and result pages."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.repositories.product_repository import ProductQuery

ProductStatus = Literal["active", "inactive"]
SortOrder = Literal["asc", "desc"]

MAX_PRICE = Decimal("999999.99")


class ProductCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    sku: str = Field(..., min_length=1, max_length=50, description="Case-insensitive unique SKU")
    name: str = Field(..., min_length=3, max_length=255)
    description: str | None = Field(None, max_length=1000)
    price: Decimal = Field(..., gt=0, le=MAX_PRICE, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    status: ProductStatus = "active"


class ProductUpdate(BaseModel):
    """Partial update: only fields present in the payload are applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    sku: str | None = Field(None, min_length=1, max_length=50)
    name: str | None = Field(None, min_length=3, max_length=255)
    description: str | None = Field(None, max_length=1000)
    price: Decimal | None = Field(None, gt=0, le=MAX_PRICE, decimal_places=2)
    category: str | None = Field(None, min_length=1, max_length=100)
    status: ProductStatus | None = None

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "ProductUpdate":
        for field_name in ("sku", "name", "price", "category", "status"):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ProductRead(BaseModel):
    id: str
    sku: str
    name: str
    description: str | None = None
    price: Decimal
    category: str
    status: ProductStatus
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}


class ProductListResponse(BaseModel):
    """Pagination envelope shared by listing and search."""

    items: list[ProductRead]
    total: int
    page: int
    per_page: int
    last_page: int
    degraded: bool = False
    message: str | None = None

    @classmethod
    def build(
        cls,
        items: list[Any],
        *,
        total: int,
        page: int,
        per_page: int,
        degraded: bool = False,
        message: str | None = None,
    ) -> "ProductListResponse":
        return cls(
            items=[ProductRead.model_validate(item) for item in items],
            total=total,
            page=page,
            per_page=per_page,
            last_page=max(1, math.ceil(total / per_page)),
            degraded=degraded,
            message=message,
        )


class _PriceRangeMixin(BaseModel):
    min_price: Decimal | None = Field(None, ge=0)
    max_price: Decimal | None = Field(None, ge=0)

    @model_validator(mode="after")
    def check_price_range(self):
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price cannot be greater than max_price")
        return self


class ProductFilters(_PriceRangeMixin):
    """Filters accepted by the product listing."""

    model_config = ConfigDict(str_strip_whitespace=True)

    category: str | None = None
    status: ProductStatus | None = None
    search: str | None = Field(None, max_length=100)
    sort_by: Literal["price", "created_at", "name"] = "created_at"
    sort_order: SortOrder = "desc"
    page: int = Field(1, ge=1)
    per_page: int = Field(15, ge=1, le=100)
    with_trashed: bool = False

    def to_query(self) -> ProductQuery:
        return ProductQuery(
            text=self.search or None,
            category=self.category or None,
            status=self.status,
            min_price=self.min_price,
            max_price=self.max_price,
            sort_field=self.sort_by,
            sort_order=self.sort_order,
            page=self.page,
            per_page=self.per_page,
            include_deleted=self.with_trashed,
        )

    def cache_params(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class SearchParams(_PriceRangeMixin):
    """Parameters accepted by the search endpoint."""

    model_config = ConfigDict(str_strip_whitespace=True)

    q: str | None = Field(None, max_length=100)
    category: str | None = None
    status: ProductStatus | None = None
    sort: Literal["price", "created_at"] | None = None
    order: SortOrder | None = None
    page: int = Field(1, ge=1)
    per_page: int = Field(15, ge=1, le=100)

    @property
    def has_text(self) -> bool:
        return bool(self.q and self.q.strip())

    def resolved_sort(self) -> tuple[str | None, str]:
        """Return ``(field, order)``; a None field means rank by relevance.

        An explicit sort defaults to ascending. Without one, text queries
        rank by relevance and everything else is newest first.
        """
        if self.sort is not None:
            return self.sort, self.order or "asc"
        if self.has_text:
            return None, "desc"
        return "created_at", self.order or "desc"

    def to_query(self) -> ProductQuery:
        """Equivalent primary store query used when the index is unavailable."""
        sort_field, sort_order = self.resolved_sort()
        if sort_field is None:
            sort_field, sort_order = "created_at", "desc"
        return ProductQuery(
            text=self.q if self.has_text else None,
            category=self.category or None,
            status=self.status,
            min_price=self.min_price,
            max_price=self.max_price,
            sort_field=sort_field,
            sort_order=sort_order,
            page=self.page,
            per_page=self.per_page,
        )

    def cache_params(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
