"""Search orchestration: search index first, primary store on failure."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.api.schemas.product import ProductListResponse, SearchParams
from app.core.exceptions import UpstreamUnavailable
from app.repositories.product_repository import ProductRepository
from app.search.index import ProductSearchIndex
from app.search.query_builder import build_bool_query, build_sort, pagination_window
from app.services.response_cache import ResponseCache, list_cache_key

logger = logging.getLogger(__name__)

DEGRADED_MESSAGE = (
    "Search index unavailable; results were served from the primary store "
    "using substring matching."
)


class SearchService:
    def __init__(
        self,
        session: Session,
        index: ProductSearchIndex,
        cache: ResponseCache | None = None,
    ) -> None:
        self.repository = ProductRepository(session)
        self.index = index
        self.cache = cache

    def search(self, params: SearchParams) -> ProductListResponse:
        """Run a search, reading through the response cache when one is set.

        Degraded results are returned but never cached.
        """
        if self.cache is None:
            return self.perform_search(params)

        key = list_cache_key("search", params.cache_params())
        payload = self.cache.get_or_compute(
            key,
            lambda: self.perform_search(params).model_dump(mode="json"),
            page=params.page,
            store_if=lambda value: not value.get("degraded"),
        )
        return ProductListResponse.model_validate(payload)

    def perform_search(self, params: SearchParams) -> ProductListResponse:
        """Query the index, or the primary store when the index is unavailable.

        Only index failures trigger the fallback; primary store errors
        while resolving hits propagate to the caller.
        """
        sort_field, sort_order = params.resolved_sort()
        from_, size = pagination_window(params.page, params.per_page)
        try:
            hits = self.index.query(
                build_bool_query(
                    params.q,
                    category=params.category,
                    status=params.status,
                    min_price=params.min_price,
                    max_price=params.max_price,
                ),
                build_sort(sort_field, sort_order),
                from_,
                size,
            )
        except UpstreamUnavailable as e:
            logger.error(
                f"Search index failed, falling back to database: {e}",
                extra={"search_params": params.model_dump(mode="json")},
            )
            return self._search_database(params)

        items = self._resolve(hits.ids)
        return ProductListResponse.build(
            items, total=hits.total, page=params.page, per_page=params.per_page
        )

    def _resolve(self, product_ids: list[str]) -> list[Any]:
        """Load full records for index hits, keeping the index's ranking.

        Hits whose product is gone or soft-deleted (index lag) are skipped.
        """
        products = {p.id: p for p in self.repository.find_many_by_ids(product_ids)}
        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            logger.info(f"Skipping {len(missing)} stale search hit(s): {missing}")
        return [products[pid] for pid in product_ids if pid in products]

    def _search_database(self, params: SearchParams) -> ProductListResponse:
        items, total = self.repository.query_filtered(params.to_query())
        return ProductListResponse.build(
            items,
            total=total,
            page=params.page,
            per_page=params.per_page,
            degraded=True,
            message=DEGRADED_MESSAGE,
        )
