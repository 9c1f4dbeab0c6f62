"""Tagged, TTL-randomized response cache backed by Redis.

Redis is only ever a cache here: every read path can recompute its value
from the primary store, so backend failures degrade to a cache miss.
"""

from __future__ import annotations

import hashlib
import json
import logging
import random
from collections.abc import Callable, Iterable, Mapping
from functools import lru_cache
from typing import Any, TypeVar

from redis import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.core.exceptions import UpstreamUnavailable
from app.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_PREFIX = "cache:"
TAG_PREFIX = "cache:tags:"
SERVICE_NAME = "redis-cache"


class RedisCacheBackend:
    """get/put/forget/flush_tag over Redis strings plus one set per tag."""

    def __init__(self, client: Redis) -> None:
        self.client = client

    @staticmethod
    def _key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    @staticmethod
    def _tag_key(tag: str) -> str:
        return f"{TAG_PREFIX}{tag}"

    def get(self, key: str) -> str | None:
        try:
            raw = self.client.get(self._key(key))
        except RedisError as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    def put(
        self,
        key: str,
        value: str,
        ttl: int,
        tags: Iterable[str] = (),
        tag_ttl: int | None = None,
    ) -> None:
        """Store ``value`` and register ``key`` under each tag.

        Tag sets expire after ``tag_ttl`` (default ``ttl``), refreshed on
        every put, so a set outlives its newest entry and never grows
        unbounded between flushes.
        """
        tag_ttl = max(ttl, tag_ttl or 0)
        try:
            pipe = self.client.pipeline()
            pipe.set(self._key(key), value, ex=ttl)
            for tag in tags:
                pipe.sadd(self._tag_key(tag), key)
                pipe.expire(self._tag_key(tag), tag_ttl)
            pipe.execute()
        except RedisError as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e

    def forget(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except RedisError as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e

    def flush_tag(self, tag: str) -> int:
        """Delete every entry tagged ``tag`` and return how many were tracked."""
        tag_key = self._tag_key(tag)
        try:
            members = self.client.smembers(tag_key)
            keys = [
                self._key(m.decode("utf-8") if isinstance(m, bytes) else m)
                for m in members
            ]
            pipe = self.client.pipeline()
            if keys:
                pipe.delete(*keys)
            pipe.delete(tag_key)
            pipe.execute()
        except RedisError as e:
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e
        return len(keys)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False


def product_cache_key(product_id: str) -> str:
    return f"product_{product_id}"


def list_cache_key(resource: str, params: Mapping[str, Any]) -> str:
    """Fingerprint a list/search request.

    Unset params are dropped and keys sorted before hashing, so equivalent
    parameter orderings share a key and distinct filter sets never do.
    """
    normalized = {k: params[k] for k in sorted(params) if params[k] is not None}
    serialized = json.dumps(normalized, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.md5(serialized.encode("utf-8")).hexdigest()
    return f"{resource}_list_{digest}"


class ResponseCache:
    def __init__(
        self,
        backend: RedisCacheBackend,
        *,
        tag: str = "products",
        ttl_window: tuple[int, int] = (60, 120),
        max_cached_page: int = 50,
        rng: random.Random | None = None,
    ) -> None:
        self.backend = backend
        self.tag = tag
        self.ttl_window = ttl_window
        self.max_cached_page = max_cached_page
        self._rng = rng or random.Random()

    def should_bypass(self, page: int | None) -> bool:
        """Deep pages are neither read from nor written to the cache."""
        return page is not None and page > self.max_cached_page

    def choose_ttl(self, ttl_window: tuple[int, int] | None = None) -> int:
        low, high = ttl_window or self.ttl_window
        return self._rng.randint(low, high)

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], T],
        *,
        ttl_window: tuple[int, int] | None = None,
        page: int | None = None,
        store_if: Callable[[T], bool] | None = None,
    ) -> T:
        """Return the cached JSON value for ``key`` or compute and store it.

        ``compute`` must return a JSON-serializable value. Exceptions raised
        by ``compute`` propagate and nothing is stored.
        """
        if self.should_bypass(page):
            return compute()

        try:
            cached = self.backend.get(key)
        except UpstreamUnavailable as e:
            logger.warning(f"Cache read failed for {key}, computing directly: {e}")
            return compute()

        if cached is not None:
            try:
                return json.loads(cached)
            except json.JSONDecodeError:
                logger.warning(f"Discarding undecodable cache entry {key}")

        value = compute()
        if store_if is not None and not store_if(value):
            return value

        try:
            self.backend.put(
                key,
                json.dumps(value, separators=(",", ":")),
                self.choose_ttl(ttl_window),
                tags=(self.tag,),
                tag_ttl=max(self.ttl_window[1], (ttl_window or self.ttl_window)[1]),
            )
        except UpstreamUnavailable as e:
            logger.warning(f"Cache write failed for {key}: {e}")
        return value

    def invalidate(self, key: str) -> None:
        try:
            self.backend.forget(key)
        except UpstreamUnavailable as e:
            logger.error(f"Cache invalidation failed for {key}: {e}")

    def invalidate_group(self, tag: str | None = None) -> None:
        tag = tag or self.tag
        try:
            flushed = self.backend.flush_tag(tag)
            logger.debug(f"Flushed {flushed} cache entries tagged '{tag}'")
        except UpstreamUnavailable as e:
            logger.error(f"Cache tag flush failed for '{tag}': {e}")


@lru_cache
def get_response_cache() -> ResponseCache:
    """Process-wide response cache built from settings."""
    settings = get_settings()
    client = create_redis_client(
        settings.cache_redis_url or settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    return ResponseCache(
        RedisCacheBackend(client),
        tag=settings.cache_tag,
        ttl_window=settings.cache_ttl_window,
        max_cached_page=settings.cache_max_page,
    )
