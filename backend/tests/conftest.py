"""Shared fixtures: SQLite primary store and in-memory cache, index and queue doubles."""

import os
import random
import tempfile
from decimal import Decimal

# Must be set before app modules read settings
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="catalog-uploads-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.api.schemas.product import ProductCreate
from app.core.exceptions import UpstreamUnavailable
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.search.index import SearchHits
from app.services.catalog_service import CatalogService
from app.services.response_cache import ResponseCache
from app.services.search_service import SearchService


class InMemoryCacheBackend:
    """Cache backend double with the same contract as RedisCacheBackend."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.tag_ttls: dict[str, int] = {}
        self.tags: dict[str, set[str]] = {}
        self.available = True
        self.reads = 0

    def _check(self):
        if not self.available:
            raise UpstreamUnavailable("redis-cache", "connection refused")

    def get(self, key):
        self._check()
        self.reads += 1
        return self.values.get(key)

    def put(self, key, value, ttl, tags=(), tag_ttl=None):
        self._check()
        self.values[key] = value
        self.ttls[key] = ttl
        for tag in tags:
            self.tags.setdefault(tag, set()).add(key)
            self.tag_ttls[tag] = max(ttl, tag_ttl or 0)

    def forget(self, key):
        self._check()
        self.values.pop(key, None)
        self.ttls.pop(key, None)

    def flush_tag(self, tag):
        self._check()
        keys = self.tags.pop(tag, set())
        for key in keys:
            self.values.pop(key, None)
            self.ttls.pop(key, None)
        return len(keys)

    def ping(self):
        return self.available


class FakeSearchIndex:
    """Search index double that evaluates the subset of query DSL we emit."""

    def __init__(self):
        self.documents: dict[str, dict] = {}
        self.fail_with: Exception | None = None
        self.queries: list[dict] = []

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def upsert_document(self, document_id, document):
        self._check()
        self.documents[document_id] = dict(document)

    def delete_document(self, document_id):
        self._check()
        return self.documents.pop(document_id, None) is not None

    def ping(self):
        return self.fail_with is None

    def query(self, bool_query, sort, from_, size):
        self._check()
        self.queries.append({"query": bool_query, "sort": sort, "from": from_, "size": size})
        clauses = bool_query["bool"]
        scored = []
        for doc in self.documents.values():
            score = self._score(doc, clauses["must"])
            if score is None or not all(self._passes(doc, f) for f in clauses["filter"]):
                continue
            scored.append((doc, score))

        for clause in reversed(sort):
            ((field, options),) = clause.items()
            reverse = options["order"] == "desc"
            if field == "_score":
                scored.sort(key=lambda pair: pair[1], reverse=reverse)
            else:
                scored.sort(key=lambda pair: pair[0][field], reverse=reverse)

        page = scored[from_:from_ + size]
        return SearchHits(
            ids=[doc["id"] for doc, _ in page],
            scores=[score for _, score in page],
            total=len(scored),
        )

    @staticmethod
    def _score(doc, must):
        (clause,) = must
        if "match_all" in clause:
            return 1.0
        terms = clause["multi_match"]["query"].lower().split()
        haystack = " ".join(
            str(doc.get(field) or "") for field in ("name", "description", "sku")
        ).lower()
        score = float(sum(haystack.count(term) for term in terms))
        return score or None

    @staticmethod
    def _passes(doc, clause):
        if "term" in clause:
            ((field, value),) = clause["term"].items()
            return doc.get(field) == value
        ((field, bounds),) = clause["range"].items()
        value = doc.get(field)
        if "gte" in bounds and value < bounds["gte"]:
            return False
        if "lte" in bounds and value > bounds["lte"]:
            return False
        return True


class RecordingDispatcher:
    def __init__(self):
        self.events: list[tuple[str, str]] = []

    def enqueue(self, event_kind, payload):
        kind = getattr(event_kind, "value", event_kind)
        self.events.append((kind, payload["product_id"]))


@pytest.fixture(autouse=True)
def _tables():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache_backend():
    return InMemoryCacheBackend()


@pytest.fixture
def cache(cache_backend):
    return ResponseCache(cache_backend, rng=random.Random(7))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def search_index():
    return FakeSearchIndex()


@pytest.fixture
def catalog(db_session, cache, dispatcher):
    return CatalogService(db_session, cache, dispatcher)


@pytest.fixture
def search_service(db_session, search_index, cache):
    return SearchService(db_session, search_index, cache)


@pytest.fixture
def make_product(catalog):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "sku": f"SKU-{counter['n']:04d}",
            "name": f"Product {counter['n']}",
            "description": "A dependable catalog item",
            "price": Decimal("10.00"),
            "category": "general",
        }
        data.update(overrides)
        return catalog.create(ProductCreate(**data))

    return _make
