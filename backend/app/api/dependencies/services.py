"""Service wiring for request handlers; tests override these providers."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from app.api.dependencies.db import get_session
from app.search.index import ProductSearchIndex, get_search_index
from app.services.catalog_service import CatalogService, IndexSyncDispatcher
from app.services.index_sync_dispatch import CeleryIndexSyncDispatcher
from app.services.response_cache import ResponseCache, get_response_cache
from app.services.search_service import SearchService
from app.storage.image_storage import ImageStorage, get_image_storage


def get_cache() -> ResponseCache:
    return get_response_cache()


def get_index() -> ProductSearchIndex:
    return get_search_index()


def get_dispatcher() -> IndexSyncDispatcher:
    return CeleryIndexSyncDispatcher()


def get_images() -> ImageStorage:
    return get_image_storage()


def get_catalog_service(
    db: Session = Depends(get_session),
    cache: ResponseCache = Depends(get_cache),
    dispatcher: IndexSyncDispatcher = Depends(get_dispatcher),
) -> CatalogService:
    return CatalogService(db, cache, dispatcher)


def get_search_service(
    db: Session = Depends(get_session),
    index: ProductSearchIndex = Depends(get_index),
    cache: ResponseCache = Depends(get_cache),
) -> SearchService:
    return SearchService(db, index, cache)
