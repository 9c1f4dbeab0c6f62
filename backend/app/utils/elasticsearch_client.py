"""Helper function to create Elasticsearch clients from settings."""

from __future__ import annotations

from typing import Any

from elasticsearch import Elasticsearch


def create_elasticsearch_client(
    url: str,
    *,
    username: str | None = None,
    password: str | None = None,
    request_timeout: float | None = None,
    **kwargs: Any,
) -> Elasticsearch:
    """Create an Elasticsearch client.

    Basic auth is only configured when a username is present, so local
    clusters with security disabled work without credentials.

    Args:
        url: Node URL (http:// or https://)
        username: Optional basic-auth user
        password: Optional basic-auth password
        request_timeout: Default per-request timeout in seconds
        **kwargs: Additional client options (retry_on_timeout, max_retries, etc.)

    Returns:
        Configured Elasticsearch client
    """
    options: dict[str, Any] = dict(kwargs)
    if username:
        options["basic_auth"] = (username, password or "")
    if request_timeout is not None:
        options["request_timeout"] = request_timeout
    return Elasticsearch(url, **options)
