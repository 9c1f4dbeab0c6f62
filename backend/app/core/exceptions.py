"""Typed outcomes raised by the catalog core and mapped to HTTP by the API."""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    status_code: int = 400

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(CatalogError):
    """Malformed or out-of-range input; never retried."""

    status_code = 422

    def __init__(
        self, message: str = "Validation failed", *, errors: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.errors = errors or {}


class NotFoundError(CatalogError):
    status_code = 404

    def __init__(self, message: str = "Product not found") -> None:
        super().__init__(message)


class ConflictError(CatalogError):
    """Uniqueness violation, e.g. a duplicate SKU."""

    status_code = 422

    def __init__(self, message: str = "Conflict", *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class UpstreamUnavailable(CatalogError):
    """Search index or cache backend failure.

    Absorbed internally: callers fall back to the primary store or to
    recomputing the value, so this never reaches an HTTP client.
    """

    status_code = 503

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service} unavailable: {message}")
        self.service = service


class IndexSyncFailure(CatalogError):
    """An index sync event exhausted its retries."""

    status_code = 500

    def __init__(self, product_id: str, event: str, reason: str) -> None:
        super().__init__(
            f"Index sync '{event}' for product {product_id} failed: {reason}"
        )
        self.product_id = product_id
        self.event = event
        self.reason = reason
