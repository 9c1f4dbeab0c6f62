"""Health, readiness and index-sync status endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies.services import get_cache, get_index
from app.db.session import engine
from app.search.index import ProductSearchIndex
from app.services.dead_letter import fetch_dead_letters
from app.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "product-catalog-api"


def _check_database() -> dict[str, str]:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy", "message": "Database connection successful"}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return {"status": "unhealthy", "message": f"Database connection failed: {e}"}


def _check_cache(cache: ResponseCache) -> dict[str, str]:
    if cache.backend.ping():
        return {"status": "healthy", "message": "Redis connection successful"}
    logger.warning("Redis health check failed")
    return {"status": "unhealthy", "message": "Redis connection failed"}


def _check_search(index: ProductSearchIndex) -> dict[str, str]:
    if index.ping():
        return {"status": "healthy", "message": "Elasticsearch connection successful"}
    logger.warning("Elasticsearch health check failed")
    return {"status": "unhealthy", "message": "Elasticsearch connection failed"}


@router.get("", summary="Dependency overview")
def health(
    cache: ResponseCache = Depends(get_cache),
    index: ProductSearchIndex = Depends(get_index),
) -> dict[str, Any]:
    """Report every dependency; only the database is required to be healthy.

    Cache and search outages degrade the API (fallbacks take over) without
    making it unhealthy.
    """
    checks = {
        "database": _check_database(),
        "cache": _check_cache(cache),
        "search": _check_search(index),
    }
    overall = "healthy" if checks["database"]["status"] == "healthy" else "unhealthy"
    if overall == "healthy" and any(c["status"] != "healthy" for c in checks.values()):
        overall = "degraded"
    body = {
        "status": overall,
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
    if overall == "unhealthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=body)
    return body


@router.get("/live", summary="Liveness probe")
async def live() -> dict[str, str]:
    """Indicates API process is running."""
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/ready", summary="Readiness probe")
def ready() -> dict[str, Any]:
    """Ready when the primary store answers; used by load balancers."""
    database = _check_database()
    body = {"status": "ok", "service": SERVICE_NAME, "checks": {"database": database}}
    if database["status"] != "healthy":
        body["status"] = "unhealthy"
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=body)
    return body


@router.get("/index-sync", summary="Recent terminal index sync failures")
def index_sync_failures(
    limit: int = Query(50, ge=1, le=500, description="Maximum entries to return"),
) -> dict[str, Any]:
    """Dead-lettered index sync events, newest first."""
    failures = fetch_dead_letters(limit)
    return {"count": len(failures), "failures": failures}
