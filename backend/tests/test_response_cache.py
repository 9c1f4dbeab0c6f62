import json
import random
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.exceptions import UpstreamUnavailable
from app.services.response_cache import (
    RedisCacheBackend,
    ResponseCache,
    list_cache_key,
    product_cache_key,
)


class Counter:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


def test_list_key_is_stable_across_parameter_order():
    a = list_cache_key("products", {"category": "tools", "page": 2, "sort_by": "price"})
    b = list_cache_key("products", {"sort_by": "price", "page": 2, "category": "tools"})
    assert a == b
    assert a.startswith("products_list_")


def test_list_key_ignores_unset_params_and_separates_filters():
    base = list_cache_key("products", {"category": "tools"})
    assert base == list_cache_key("products", {"category": "tools", "search": None})
    assert base != list_cache_key("products", {"category": "garden"})
    assert base != list_cache_key("search", {"category": "tools"})


def test_product_key_format():
    assert product_cache_key("abc") == "product_abc"


def test_get_or_compute_stores_then_hits(cache, cache_backend):
    compute = Counter({"answer": 42})

    assert cache.get_or_compute("k", compute) == {"answer": 42}
    assert cache.get_or_compute("k", compute) == {"answer": 42}

    assert compute.calls == 1
    assert json.loads(cache_backend.values["k"]) == {"answer": 42}
    assert "k" in cache_backend.tags["products"]


def test_ttl_is_drawn_from_window(cache_backend):
    cache = ResponseCache(cache_backend, rng=random.Random(1))
    for i in range(200):
        cache.get_or_compute(f"key-{i}", lambda: i)

    ttls = set(cache_backend.ttls.values())
    assert min(ttls) >= 60
    assert max(ttls) <= 120
    assert len(ttls) > 1


def test_tag_ttl_covers_the_whole_window(cache, cache_backend):
    for i in range(20):
        cache.get_or_compute(f"key-{i}", lambda: i)

    assert cache_backend.tag_ttls["products"] == 120
    assert max(cache_backend.ttls.values()) <= cache_backend.tag_ttls["products"]


def test_tag_ttl_follows_a_longer_custom_window(cache, cache_backend):
    cache.get_or_compute("long", lambda: 1, ttl_window=(300, 300))
    assert cache_backend.tag_ttls["products"] == 300


def test_custom_ttl_window(cache, cache_backend):
    cache.get_or_compute("short", lambda: 1, ttl_window=(5, 5))
    assert cache_backend.ttls["short"] == 5


@pytest.mark.parametrize("page,cached", [(1, True), (50, True), (51, False), (None, True)])
def test_deep_pages_bypass_cache(cache, cache_backend, page, cached):
    compute = Counter([1, 2, 3])

    cache.get_or_compute("page-key", compute, page=page)
    cache.get_or_compute("page-key", compute, page=page)

    assert ("page-key" in cache_backend.values) is cached
    assert compute.calls == (1 if cached else 2)


def test_store_if_rejects_value(cache, cache_backend):
    compute = Counter({"degraded": True})

    cache.get_or_compute("k", compute, store_if=lambda v: not v["degraded"])
    cache.get_or_compute("k", compute, store_if=lambda v: not v["degraded"])

    assert compute.calls == 2
    assert cache_backend.values == {}


def test_compute_errors_propagate_and_nothing_is_stored(cache, cache_backend):
    def boom():
        raise LookupError("no such product")

    with pytest.raises(LookupError):
        cache.get_or_compute("k", boom)
    assert cache_backend.values == {}


def test_backend_outage_degrades_to_compute(cache, cache_backend):
    cache_backend.available = False
    compute = Counter("fresh")

    assert cache.get_or_compute("k", compute) == "fresh"
    assert cache.get_or_compute("k", compute) == "fresh"
    assert compute.calls == 2

    # Invalidation failures are logged, never raised
    cache.invalidate("k")
    cache.invalidate_group()


def test_undecodable_entry_is_recomputed(cache, cache_backend):
    cache_backend.values["k"] = "{not json"

    assert cache.get_or_compute("k", lambda: [1]) == [1]
    assert json.loads(cache_backend.values["k"]) == [1]


def test_invalidate_group_drops_every_tagged_entry(cache, cache_backend):
    cache.get_or_compute("products_list_a", lambda: 1)
    cache.get_or_compute("search_list_b", lambda: 2)
    cache.get_or_compute("product_x", lambda: 3)

    cache.invalidate("product_x")
    assert "product_x" not in cache_backend.values

    cache.invalidate_group()
    assert cache_backend.values == {}


# RedisCacheBackend against a mocked client


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.pipeline.return_value = MagicMock()
    return client


def test_redis_backend_prefixes_keys_and_tags(redis_client):
    backend = RedisCacheBackend(redis_client)

    backend.put("product_1", '{"id":"1"}', 90, tags=("products",))

    pipe = redis_client.pipeline.return_value
    pipe.set.assert_called_once_with("cache:product_1", '{"id":"1"}', ex=90)
    pipe.sadd.assert_called_once_with("cache:tags:products", "product_1")
    pipe.expire.assert_called_once_with("cache:tags:products", 90)
    pipe.execute.assert_called_once()


def test_redis_backend_tag_set_expires_no_earlier_than_its_entries(redis_client):
    backend = RedisCacheBackend(redis_client)

    backend.put("search_list_a", "[]", 75, tags=("products",), tag_ttl=120)
    backend.put("search_list_b", "[]", 150, tags=("products",), tag_ttl=120)

    pipe = redis_client.pipeline.return_value
    assert [c.args for c in pipe.expire.call_args_list] == [
        ("cache:tags:products", 120),
        ("cache:tags:products", 150),
    ]


def test_redis_backend_get_decodes_bytes(redis_client):
    redis_client.get.return_value = b'{"a":1}'

    assert RedisCacheBackend(redis_client).get("k") == '{"a":1}'
    redis_client.get.assert_called_once_with("cache:k")


def test_redis_backend_flush_tag_deletes_members(redis_client):
    redis_client.smembers.return_value = {b"product_1", "products_list_x"}

    flushed = RedisCacheBackend(redis_client).flush_tag("products")

    assert flushed == 2
    pipe = redis_client.pipeline.return_value
    deleted = set(pipe.delete.call_args_list[0].args)
    assert deleted == {"cache:product_1", "cache:products_list_x"}
    pipe.delete.assert_called_with("cache:tags:products")


def test_redis_backend_wraps_errors(redis_client):
    redis_client.get.side_effect = RedisConnectionError("refused")
    redis_client.ping.side_effect = RedisConnectionError("refused")
    backend = RedisCacheBackend(redis_client)

    with pytest.raises(UpstreamUnavailable) as excinfo:
        backend.get("k")
    assert excinfo.value.service == "redis-cache"
    assert backend.ping() is False
