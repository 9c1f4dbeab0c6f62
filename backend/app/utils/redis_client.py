"""Helper function to create Redis clients with TLS support for hosted providers."""

from __future__ import annotations

import ssl
from typing import Any

from redis import Redis

HOSTED_TLS_DOMAINS = (".upstash.io",)


def _is_hosted_tls(url: str) -> bool:
    return any(domain in url for domain in HOSTED_TLS_DOMAINS)


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client used by the response cache and dead-letter list.

    Hosted providers that require TLS are switched to ``rediss://`` and
    certificate verification is relaxed for them.

    Args:
        url: Redis connection URL (redis:// or rediss://)
        **kwargs: Additional arguments (decode_responses, socket_connect_timeout, etc.)

    Returns:
        Configured Redis client
    """
    if _is_hosted_tls(url) and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)

    client = Redis.from_url(url, **kwargs)

    if url.startswith("rediss://"):
        connection_kwargs = getattr(client.connection_pool, "connection_kwargs", None)
        if connection_kwargs is not None:
            connection_kwargs["ssl_cert_reqs"] = ssl.CERT_NONE

    return client
