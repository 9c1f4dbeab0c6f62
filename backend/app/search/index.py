"""Elasticsearch-backed product search index."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError
from elasticsearch.helpers import BulkIndexError, bulk

from app.core.config import get_settings
from app.core.exceptions import UpstreamUnavailable
from app.search.documents import INDEX_MAPPINGS, INDEX_SETTINGS
from app.utils.elasticsearch_client import create_elasticsearch_client

logger = logging.getLogger(__name__)

SERVICE_NAME = "elasticsearch"


@dataclass
class SearchHits:
    """Ranked document ids returned by the index for one page."""

    ids: list[str] = field(default_factory=list)
    scores: list[float | None] = field(default_factory=list)
    total: int = 0


class ProductSearchIndex:
    """Thin adapter over the Elasticsearch client for the products index.

    Every transport, API or parsing failure is raised as
    ``UpstreamUnavailable`` so callers handle a single error type.
    """

    def __init__(
        self,
        client: Elasticsearch,
        index_name: str = "products",
        *,
        query_timeout: float | None = None,
    ) -> None:
        self.client = client
        self.index_name = index_name
        self.query_timeout = query_timeout

    def index_exists(self) -> bool:
        try:
            return bool(self.client.indices.exists(index=self.index_name))
        except (ApiError, TransportError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e

    def create_index(self) -> bool:
        """Create the index with the product mapping; False if it already exists."""
        if self.index_exists():
            return False
        try:
            self.client.indices.create(
                index=self.index_name,
                settings=INDEX_SETTINGS,
                mappings=INDEX_MAPPINGS,
            )
        except (ApiError, TransportError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e
        logger.info(f"Created search index '{self.index_name}'")
        return True

    def upsert_document(self, document_id: str, document: dict[str, Any]) -> None:
        try:
            self.client.index(index=self.index_name, id=document_id, document=document)
        except (ApiError, TransportError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e

    def delete_document(self, document_id: str) -> bool:
        """Remove a document; returns False when it was already absent."""
        try:
            self.client.delete(index=self.index_name, id=document_id)
        except NotFoundError:
            # Missing document (or index) is already-consistent state
            return False
        except (ApiError, TransportError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e
        return True

    def bulk_index(self, documents: Iterable[dict[str, Any]]) -> int:
        """Index documents in one bulk request and return the success count."""
        actions = (
            {"_op_type": "index", "_index": self.index_name, "_id": doc["id"], "_source": doc}
            for doc in documents
        )
        try:
            success, _ = bulk(self.client, actions)
        except (ApiError, TransportError, BulkIndexError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e
        return success

    def count(self) -> int:
        try:
            return int(self.client.count(index=self.index_name)["count"])
        except (ApiError, TransportError, KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e

    def query(
        self,
        bool_query: dict[str, Any],
        sort: list[dict[str, Any]],
        from_: int,
        size: int,
    ) -> SearchHits:
        client = self.client
        if self.query_timeout is not None:
            client = client.options(request_timeout=self.query_timeout)
        try:
            response = client.search(
                index=self.index_name,
                query=bool_query,
                sort=sort,
                from_=from_,
                size=size,
                track_total_hits=True,
                source=False,
            )
            hits = response["hits"]
            total = hits["total"]
            total_value = int(total["value"] if isinstance(total, dict) else total)
            ids = [str(hit["_id"]) for hit in hits["hits"]]
            scores = [hit.get("_score") for hit in hits["hits"]]
        except (ApiError, TransportError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, f"malformed response: {e!r}") from e
        return SearchHits(ids=ids, scores=scores, total=total_value)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except (ApiError, TransportError):
            return False


@lru_cache
def get_search_index() -> ProductSearchIndex:
    """Process-wide index adapter built from settings."""
    settings = get_settings()
    client = create_elasticsearch_client(
        settings.elasticsearch_url,
        username=settings.elasticsearch_username,
        password=settings.elasticsearch_password,
        request_timeout=settings.search_timeout_seconds,
    )
    return ProductSearchIndex(
        client,
        settings.elasticsearch_index,
        query_timeout=settings.search_timeout_seconds,
    )
