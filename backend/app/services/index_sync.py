"""Reconcile the search index with the primary store for one product."""

from __future__ import annotations

import logging
from enum import Enum

from sqlalchemy.orm import Session

from app.repositories.product_repository import ProductRepository
from app.search.documents import to_search_document
from app.search.index import ProductSearchIndex

logger = logging.getLogger(__name__)


class IndexSyncEvent(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"


class SyncOutcome(str, Enum):
    INDEXED = "indexed"
    REMOVED = "removed"
    ALREADY_ABSENT = "already_absent"


def reconcile_product(
    product_id: str,
    event: IndexSyncEvent | str,
    *,
    session: Session,
    index: ProductSearchIndex,
) -> SyncOutcome:
    """Bring the index document for ``product_id`` in line with the store.

    The event kind is informational only. The handler always re-reads the
    product: a live product is upserted, a soft-deleted or missing one is
    removed. Whatever order events are processed in, the last run leaves
    the index matching the store.
    """
    event = IndexSyncEvent(event)
    product = ProductRepository(session).find_by_id(product_id, include_deleted=True)

    if product is None or product.is_deleted:
        if event in (IndexSyncEvent.CREATED, IndexSyncEvent.UPDATED, IndexSyncEvent.RESTORED):
            logger.info(
                f"Product {product_id} is no longer live at '{event.value}' sync, removing"
            )
        removed = index.delete_document(product_id)
        if not removed:
            logger.info(f"Product {product_id} not in search index (already removed)")
            return SyncOutcome.ALREADY_ABSENT
        logger.info(f"Product {product_id} removed from search index")
        return SyncOutcome.REMOVED

    if event == IndexSyncEvent.DELETED:
        logger.info(f"Product {product_id} is live again at 'deleted' sync, re-indexing")
    index.upsert_document(product.id, to_search_document(product))
    logger.info(f"Product {product.id} synced to search index (sku={product.sku})")
    return SyncOutcome.INDEXED
