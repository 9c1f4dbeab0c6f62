"""Product CRUD with cache invalidation and index sync as side effects.

Each mutating operation commits its own transaction first; cache entries
are invalidated synchronously and an index sync event is enqueued only
after the commit succeeds. A rolled-back write has no side effects.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.schemas.product import (
    ProductCreate,
    ProductFilters,
    ProductListResponse,
    ProductRead,
    ProductUpdate,
)
from app.core.exceptions import ConflictError, NotFoundError
from app.db.models.product import Product
from app.repositories.product_repository import ProductRepository
from app.services.index_sync import IndexSyncEvent
from app.services.response_cache import (
    ResponseCache,
    list_cache_key,
    product_cache_key,
)

logger = logging.getLogger(__name__)


class IndexSyncDispatcher(Protocol):
    def enqueue(self, event_kind: IndexSyncEvent | str, payload: dict[str, Any]) -> None:
        ...


class CatalogService:
    def __init__(
        self,
        session: Session,
        cache: ResponseCache,
        dispatcher: IndexSyncDispatcher,
    ) -> None:
        self.session = session
        self.repository = ProductRepository(session)
        self.cache = cache
        self.dispatcher = dispatcher

    # Reads

    def list(self, filters: ProductFilters) -> ProductListResponse:
        key = list_cache_key("products", filters.cache_params())
        payload = self.cache.get_or_compute(
            key,
            lambda: self._query(filters).model_dump(mode="json"),
            page=filters.page,
        )
        return ProductListResponse.model_validate(payload)

    def _query(self, filters: ProductFilters) -> ProductListResponse:
        items, total = self.repository.query_filtered(filters.to_query())
        return ProductListResponse.build(
            items, total=total, page=filters.page, per_page=filters.per_page
        )

    def show(self, product_id: str, with_trashed: bool = False) -> ProductRead:
        """Return one product; soft-deleted products need ``with_trashed``."""

        def load() -> dict[str, Any]:
            product = self.repository.find_by_id(product_id, include_deleted=True)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            return ProductRead.model_validate(product).model_dump(mode="json")

        payload = self.cache.get_or_compute(product_cache_key(product_id), load)
        product = ProductRead.model_validate(payload)
        if product.deleted_at is not None and not with_trashed:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    # Writes

    def create(self, data: ProductCreate) -> ProductRead:
        self._ensure_unique_sku(data.sku)
        fields = data.model_dump()
        fields["status"] = fields.get("status") or "active"
        product = self._commit(lambda: self.repository.insert(fields), "create")

        logger.info(f"Product created id={product.id} sku={product.sku}")
        self.cache.invalidate_group()
        self._dispatch(IndexSyncEvent.CREATED, product.id)
        return ProductRead.model_validate(product)

    def update(self, product_id: str, data: ProductUpdate) -> ProductRead:
        changes = data.changes()
        if self.repository.find_by_id(product_id) is None:
            raise NotFoundError(f"Product {product_id} not found")
        if "sku" in changes:
            self._ensure_unique_sku(changes["sku"], exclude_id=product_id)

        product = self._commit(
            lambda: self.repository.update_by_id(product_id, changes), "update"
        )
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        logger.info(f"Product updated id={product.id} fields={sorted(changes)}")
        self._invalidate(product_id)
        self._dispatch(IndexSyncEvent.UPDATED, product_id)
        return ProductRead.model_validate(product)

    def delete(self, product_id: str) -> bool:
        """Soft delete a live product.

        Deleting an unknown or already-deleted id raises ``NotFoundError``
        and dispatches nothing.
        """
        affected = self._commit(
            lambda: self.repository.soft_delete_by_id(product_id), "delete"
        )
        if not affected:
            raise NotFoundError(f"Product {product_id} not found")

        logger.info(f"Product soft-deleted id={product_id}")
        self._invalidate(product_id)
        self._dispatch(IndexSyncEvent.DELETED, product_id)
        return True

    def restore(self, product_id: str) -> ProductRead:
        affected = self._commit(
            lambda: self.repository.restore_by_id(product_id), "restore"
        )
        if not affected:
            raise NotFoundError(f"No deleted product {product_id} to restore")

        product = self.repository.find_by_id(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        logger.info(f"Product restored id={product_id} sku={product.sku}")
        self._invalidate(product_id)
        self._dispatch(IndexSyncEvent.RESTORED, product_id)
        return ProductRead.model_validate(product)

    def attach_image(self, product_id: str, image_url: str) -> ProductRead:
        """Record the URL produced by the image upload workflow."""
        product = self._commit(
            lambda: self._set_image_url(product_id, image_url), "attach image"
        )
        logger.info(f"Product image attached id={product_id}")
        self._invalidate(product_id)
        self._dispatch(IndexSyncEvent.UPDATED, product_id)
        return ProductRead.model_validate(product)

    def purge(self, product_id: str) -> None:
        """Permanently delete a product, live or soft-deleted."""
        affected = self._commit(lambda: self.repository.delete_by_id(product_id), "purge")
        if not affected:
            raise NotFoundError(f"Product {product_id} not found")

        logger.info(f"Product purged id={product_id}")
        self._invalidate(product_id)
        self._dispatch(IndexSyncEvent.DELETED, product_id)

    # Helpers

    def _set_image_url(self, product_id: str, image_url: str) -> Product:
        product = self.repository.find_by_id(product_id, include_deleted=True)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        product.image_url = image_url
        self.session.flush()
        return product

    def _ensure_unique_sku(self, sku: str, exclude_id: str | None = None) -> None:
        existing = self.repository.find_by_sku(sku, include_deleted=True, exclude_id=exclude_id)
        if existing is not None:
            raise ConflictError(f"SKU '{sku}' is already in use", field="sku")

    def _commit(self, operation, action: str):
        """Run ``operation`` and commit, rolling back fully on any failure."""
        try:
            result = operation()
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            # Lost a race with a concurrent insert of the same SKU
            logger.warning(f"Integrity error during product {action}: {e}")
            raise ConflictError("SKU is already in use", field="sku") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error during product {action}: {e}", exc_info=True)
            raise
        except Exception:
            self.session.rollback()
            raise
        return result

    def _invalidate(self, product_id: str) -> None:
        self.cache.invalidate(product_cache_key(product_id))
        self.cache.invalidate_group()

    def _dispatch(self, event: IndexSyncEvent, product_id: str) -> None:
        self.dispatcher.enqueue(event, {"product_id": product_id})
