"""Dispatch index sync events to the task queue after a committed write."""

from __future__ import annotations

import logging
from typing import Any

from app.services.index_sync import IndexSyncEvent
from app.workers.tasks.index_sync import sync_product_index

logger = logging.getLogger(__name__)


class CeleryIndexSyncDispatcher:
    """Enqueue one ``sync_product_index`` task per event.

    Broker failures are logged and swallowed: the primary store write has
    already committed and the index only lags until the next event for the
    product or a full resync.
    """

    def enqueue(self, event_kind: IndexSyncEvent | str, payload: dict[str, Any]) -> None:
        event = IndexSyncEvent(event_kind)
        product_id = str(payload["product_id"])
        try:
            sync_product_index.delay(product_id, event.value)
            logger.debug(f"Enqueued index sync '{event.value}' for product {product_id}")
        except Exception as e:
            logger.error(
                f"Failed to enqueue index sync '{event.value}' for product {product_id}: {e}",
                exc_info=True,
            )
