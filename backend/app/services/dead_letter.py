"""Operator-visible record of index sync events that exhausted their retries."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

DEAD_LETTER_KEY = "index_sync:dead_letter"


@lru_cache
def _redis() -> Redis:
    settings = get_settings()
    return create_redis_client(
        settings.redis_url, decode_responses=True, socket_connect_timeout=2
    )


def record_dead_letter(
    product_id: str,
    event: str,
    error: str,
    *,
    attempts: int,
    task_id: str | None = None,
    client: Redis | None = None,
) -> dict[str, Any]:
    """Push a failed event onto the dead-letter list, newest first."""
    entry = {
        "product_id": product_id,
        "event": event,
        "error": error,
        "attempts": attempts,
        "task_id": task_id,
        "failed_at": datetime.now(timezone.utc).isoformat(),
    }
    client = client or _redis()
    max_size = get_settings().index_sync_dead_letter_size
    try:
        pipe = client.pipeline()
        pipe.lpush(DEAD_LETTER_KEY, json.dumps(entry))
        pipe.ltrim(DEAD_LETTER_KEY, 0, max_size - 1)
        pipe.execute()
    except RedisError as e:
        # The error log written by the caller is still the source of truth
        logger.error(f"Failed to record dead letter for product {product_id}: {e}")
    return entry


def fetch_dead_letters(limit: int = 50, client: Redis | None = None) -> list[dict[str, Any]]:
    """Return the most recent terminal failures."""
    client = client or _redis()
    try:
        raw_entries = client.lrange(DEAD_LETTER_KEY, 0, max(limit, 1) - 1)
    except RedisError as e:
        logger.warning(f"Failed to read dead letters: {e}")
        return []
    entries = []
    for raw in raw_entries:
        try:
            entries.append(json.loads(raw))
        except (TypeError, json.JSONDecodeError):
            continue
    return entries
