"""Projection of products into search documents and the index mapping."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.db.models.product import Product

INDEX_SETTINGS: dict[str, Any] = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
}

INDEX_MAPPINGS: dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "sku": {"type": "keyword"},
        "name": {"type": "text", "analyzer": "standard"},
        "description": {"type": "text", "analyzer": "standard"},
        "price": {"type": "float"},
        "category": {"type": "keyword"},
        "status": {"type": "keyword"},
        "created_at": {"type": "date", "format": "epoch_second"},
    }
}


def epoch_seconds(value: datetime | None) -> int | None:
    """Convert a timestamp to epoch seconds, reading naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def to_search_document(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "description": product.description,
        "price": float(product.price),
        "category": product.category,
        "status": product.status,
        "created_at": epoch_seconds(product.created_at),
    }
