"""Celery task that propagates product mutations into the search index."""

from __future__ import annotations

import logging

from celery import Task

from app.core.config import get_settings
from app.core.exceptions import IndexSyncFailure
from app.db.session import get_fresh_session
from app.search.index import get_search_index
from app.services.dead_letter import record_dead_letter
from app.services.index_sync import reconcile_product
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

settings = get_settings()


class IndexSyncTask(Task):
    """Base task that logs retries and dead-letters exhausted events."""

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        product_id, event = _event_args(args, kwargs)
        logger.warning(
            f"Index sync '{event}' for product {product_id} failed "
            f"(attempt {self.request.retries + 1}/{self.max_retries + 1}), retrying: {exc}"
        )

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        product_id, event = _event_args(args, kwargs)
        attempts = self.request.retries + 1
        failure = IndexSyncFailure(product_id, event, str(exc))
        logger.error(f"{failure} after {attempts} attempt(s)", exc_info=exc)
        record_dead_letter(
            product_id,
            event,
            str(exc),
            attempts=attempts,
            task_id=task_id,
        )


def _event_args(args, kwargs) -> tuple[str, str]:
    args = list(args or [])
    product_id = kwargs.get("product_id") if kwargs else None
    event = kwargs.get("event") if kwargs else None
    if product_id is None and args:
        product_id = args[0]
    if event is None and len(args) > 1:
        event = args[1]
    return str(product_id), str(event)


@celery_app.task(
    bind=True,
    base=IndexSyncTask,
    name="app.workers.tasks.sync_product_index",
    autoretry_for=(Exception,),
    max_retries=settings.index_sync_max_attempts - 1,
    retry_backoff=True,
    retry_backoff_max=60,
    retry_jitter=True,
)
def sync_product_index(self, product_id: str, event: str) -> str:
    """Upsert or remove the search document for one product."""
    session = get_fresh_session()
    try:
        outcome = reconcile_product(
            product_id, event, session=session, index=get_search_index()
        )
        return outcome.value
    finally:
        session.close()
