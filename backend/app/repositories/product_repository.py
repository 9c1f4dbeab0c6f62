"""Primary store access for products.

All methods operate on the caller's session and never commit: the catalog
service owns the transaction boundary for each operation.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from app.db.models.product import Product

SORTABLE_FIELDS = {
    "price": Product.price,
    "created_at": Product.created_at,
    "name": Product.name,
}
DEFAULT_SORT_FIELD = "created_at"
DEFAULT_SORT_ORDER = "desc"


@dataclass(frozen=True)
class ProductQuery:
    """Filter, sort and pagination options understood by the primary store."""

    text: str | None = None
    category: str | None = None
    status: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    sort_field: str = DEFAULT_SORT_FIELD
    sort_order: str = DEFAULT_SORT_ORDER
    page: int = 1
    per_page: int = 15
    include_deleted: bool = False

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


class ProductRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(self, fields: dict[str, Any]) -> Product:
        product = Product(**fields)
        self.session.add(product)
        self.session.flush()
        return product

    def find_by_id(self, product_id: str, include_deleted: bool = False) -> Product | None:
        stmt = select(Product).where(Product.id == product_id)
        if not include_deleted:
            stmt = stmt.where(Product.deleted_at.is_(None))
        return self.session.scalar(stmt)

    def find_by_sku(
        self,
        sku: str,
        *,
        include_deleted: bool = True,
        exclude_id: str | None = None,
    ) -> Product | None:
        """Case-insensitive SKU lookup used for uniqueness checks."""
        stmt = select(Product).where(func.lower(Product.sku) == sku.strip().lower())
        if not include_deleted:
            stmt = stmt.where(Product.deleted_at.is_(None))
        if exclude_id is not None:
            stmt = stmt.where(Product.id != exclude_id)
        return self.session.scalar(stmt.limit(1))

    def find_many_by_ids(
        self, product_ids: Sequence[str], include_deleted: bool = False
    ) -> list[Product]:
        """Fetch products by id; order of the result is unspecified."""
        if not product_ids:
            return []
        stmt = select(Product).where(Product.id.in_(list(product_ids)))
        if not include_deleted:
            stmt = stmt.where(Product.deleted_at.is_(None))
        return list(self.session.scalars(stmt).all())

    def update_by_id(self, product_id: str, fields: dict[str, Any]) -> Product | None:
        """Apply ``fields`` to a live product and return it, or None if absent."""
        product = self.find_by_id(product_id)
        if product is None:
            return None
        for key, value in fields.items():
            setattr(product, key, value)
        self.session.flush()
        return product

    # Soft delete and restore only toggle deleted_at; updated_at is pinned
    # to its current value so the column's onupdate does not fire.

    def soft_delete_by_id(self, product_id: str) -> int:
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.deleted_at.is_(None))
            .values(deleted_at=datetime.now(timezone.utc), updated_at=Product.updated_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def restore_by_id(self, product_id: str) -> int:
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.deleted_at.is_not(None))
            .values(deleted_at=None, updated_at=Product.updated_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete_by_id(self, product_id: str) -> int:
        """Permanently remove a product row regardless of its state."""
        result = self.session.execute(
            delete(Product)
            .where(Product.id == product_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def query_filtered(self, query: ProductQuery) -> tuple[list[Product], int]:
        """Return one page of matching products and the total match count."""
        conditions = []
        if not query.include_deleted:
            conditions.append(Product.deleted_at.is_(None))
        if query.category:
            conditions.append(Product.category == query.category)
        if query.status:
            conditions.append(Product.status == query.status)
        if query.min_price is not None:
            conditions.append(Product.price >= query.min_price)
        if query.max_price is not None:
            conditions.append(Product.price <= query.max_price)
        if query.text:
            # OR across the text fields, substring semantics
            conditions.append(
                or_(
                    Product.name.icontains(query.text, autoescape=True),
                    Product.description.icontains(query.text, autoescape=True),
                    Product.sku.icontains(query.text, autoescape=True),
                )
            )

        total = self.session.scalar(
            select(func.count(Product.id)).where(*conditions)
        ) or 0

        sort_column = SORTABLE_FIELDS.get(query.sort_field, Product.created_at)
        ordering = sort_column.asc() if query.sort_order == "asc" else sort_column.desc()
        stmt = (
            select(Product)
            .where(*conditions)
            .order_by(ordering, Product.id.asc())
            .offset(query.offset)
            .limit(query.per_page)
        )
        return list(self.session.scalars(stmt).all()), total

    def iter_live(self, batch_size: int = 500) -> Iterator[list[Product]]:
        """Yield live products in id order, ``batch_size`` at a time."""
        last_id: str | None = None
        while True:
            stmt = (
                select(Product)
                .where(Product.deleted_at.is_(None))
                .order_by(Product.id.asc())
                .limit(batch_size)
            )
            if last_id is not None:
                stmt = stmt.where(Product.id > last_id)
            batch = list(self.session.scalars(stmt).all())
            if not batch:
                return
            yield batch
            last_id = batch[-1].id
