"""Translate search parameters into Elasticsearch query DSL."""

from __future__ import annotations

from typing import Any

# name matches weigh more than description matches
TEXT_FIELDS = ["name^3", "sku^2", "description"]


def build_bool_query(
    q: str | None = None,
    *,
    category: str | None = None,
    status: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
) -> dict[str, Any]:
    """Build the bool query; an empty ``q`` matches every document."""
    must: list[dict[str, Any]] = []
    filters: list[dict[str, Any]] = []

    if q and q.strip():
        must.append(
            {
                "multi_match": {
                    "query": q.strip(),
                    "fields": TEXT_FIELDS,
                    "type": "best_fields",
                    "lenient": True,
                }
            }
        )
    else:
        must.append({"match_all": {}})

    if category:
        filters.append({"term": {"category": category}})
    if status:
        filters.append({"term": {"status": status}})

    price_range: dict[str, float] = {}
    if min_price is not None:
        price_range["gte"] = float(min_price)
    if max_price is not None:
        price_range["lte"] = float(max_price)
    if price_range:
        filters.append({"range": {"price": price_range}})

    return {"bool": {"must": must, "filter": filters}}


def build_sort(sort_field: str | None, sort_order: str) -> list[dict[str, Any]]:
    """Build the sort clause.

    ``sort_field=None`` ranks by relevance, with newest first among ties.
    The trailing ``id`` clause keeps pagination stable between requests.
    """
    if sort_field is None:
        clauses = [{"_score": {"order": "desc"}}, {"created_at": {"order": "desc"}}]
    else:
        clauses = [{sort_field: {"order": sort_order}}]
    clauses.append({"id": {"order": "asc"}})
    return clauses


def pagination_window(page: int, per_page: int) -> tuple[int, int]:
    """Return ``(from, size)`` for a 1-indexed page."""
    return (page - 1) * per_page, per_page
