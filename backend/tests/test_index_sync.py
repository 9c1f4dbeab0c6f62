import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.api.schemas.product import ProductUpdate
from app.core.exceptions import UpstreamUnavailable
from app.services import index_sync_dispatch
from app.services.dead_letter import DEAD_LETTER_KEY, fetch_dead_letters, record_dead_letter
from app.services.index_sync import IndexSyncEvent, SyncOutcome, reconcile_product
from app.services.index_sync_dispatch import CeleryIndexSyncDispatcher
from app.workers.tasks import index_sync as index_sync_task


def _sync(product_id, event, db_session, search_index):
    return reconcile_product(product_id, event, session=db_session, index=search_index)


def test_created_product_is_indexed_with_projection(db_session, search_index, make_product):
    product = make_product(sku="IDX-1", name="Indexed Thing", price=Decimal("19.99"))

    outcome = _sync(product.id, "created", db_session, search_index)

    assert outcome is SyncOutcome.INDEXED
    doc = search_index.documents[product.id]
    assert doc["sku"] == "IDX-1"
    assert doc["price"] == pytest.approx(19.99)
    assert isinstance(doc["created_at"], int)
    assert set(doc) == {"id", "sku", "name", "description", "price", "category", "status", "created_at"}


def test_delete_of_absent_document_is_not_an_error(db_session, search_index, catalog, make_product):
    product = make_product()
    catalog.delete(product.id)

    assert _sync(product.id, "deleted", db_session, search_index) is SyncOutcome.ALREADY_ABSENT
    assert _sync("never-existed", "deleted", db_session, search_index) is SyncOutcome.ALREADY_ABSENT


def test_deleted_product_is_removed(db_session, search_index, catalog, make_product):
    product = make_product()
    _sync(product.id, "created", db_session, search_index)
    catalog.delete(product.id)

    assert _sync(product.id, "deleted", db_session, search_index) is SyncOutcome.REMOVED
    assert product.id not in search_index.documents


def test_out_of_order_events_converge_to_store_state(db_session, search_index, catalog, make_product):
    product = make_product(name="Version One")
    catalog.update(product.id, ProductUpdate(name="Version Two"))
    catalog.update(product.id, ProductUpdate(name="Version Three"))

    # Workers pick up events in reverse order
    _sync(product.id, "updated", db_session, search_index)
    _sync(product.id, "updated", db_session, search_index)
    _sync(product.id, "created", db_session, search_index)

    assert search_index.documents[product.id]["name"] == "Version Three"


def test_late_delete_event_after_restore_keeps_document(db_session, search_index, catalog, make_product):
    product = make_product()
    catalog.delete(product.id)
    catalog.restore(product.id)

    _sync(product.id, IndexSyncEvent.RESTORED, db_session, search_index)
    outcome = _sync(product.id, IndexSyncEvent.DELETED, db_session, search_index)

    assert outcome is SyncOutcome.INDEXED
    assert product.id in search_index.documents


def test_late_create_event_for_deleted_product_removes_document(db_session, search_index, catalog, make_product):
    product = make_product()
    _sync(product.id, "created", db_session, search_index)
    catalog.delete(product.id)

    assert _sync(product.id, "created", db_session, search_index) is SyncOutcome.REMOVED
    assert product.id not in search_index.documents


def test_index_errors_propagate_for_retry(db_session, search_index, make_product):
    product = make_product()
    search_index.fail_with = UpstreamUnavailable("elasticsearch", "down")

    with pytest.raises(UpstreamUnavailable):
        _sync(product.id, "created", db_session, search_index)


def test_unknown_event_kind_is_rejected(db_session, search_index):
    with pytest.raises(ValueError):
        _sync("p1", "renamed", db_session, search_index)


# Celery task


def test_task_retries_up_to_configured_attempts():
    task = index_sync_task.sync_product_index
    assert task.max_retries == 2
    assert task.acks_late is True


def test_task_body_reconciles_with_fresh_session(search_index, make_product, monkeypatch):
    product = make_product()
    monkeypatch.setattr(index_sync_task, "get_search_index", lambda: search_index)

    result = index_sync_task.sync_product_index(product.id, "created")

    assert result == "indexed"
    assert product.id in search_index.documents


def test_exhausted_task_is_dead_lettered(monkeypatch):
    recorded = MagicMock()
    monkeypatch.setattr(index_sync_task, "record_dead_letter", recorded)

    index_sync_task.sync_product_index.on_failure(
        UpstreamUnavailable("elasticsearch", "down"),
        "task-123",
        ("p1", "updated"),
        {},
        None,
    )

    recorded.assert_called_once()
    args, kwargs = recorded.call_args
    assert args[:2] == ("p1", "updated")
    assert "elasticsearch unavailable" in args[2]
    assert kwargs["task_id"] == "task-123"
    assert kwargs["attempts"] == 1


def test_event_args_reads_positional_and_keyword_forms():
    assert index_sync_task._event_args(("p1", "created"), {}) == ("p1", "created")
    assert index_sync_task._event_args((), {"product_id": "p2", "event": "deleted"}) == ("p2", "deleted")


# Dispatcher


def test_dispatcher_enqueues_one_task_per_event(monkeypatch):
    task = MagicMock()
    monkeypatch.setattr(index_sync_dispatch, "sync_product_index", task)

    CeleryIndexSyncDispatcher().enqueue(IndexSyncEvent.UPDATED, {"product_id": "p1"})
    CeleryIndexSyncDispatcher().enqueue("restored", {"product_id": "p1"})

    assert [c.args for c in task.delay.call_args_list] == [("p1", "updated"), ("p1", "restored")]


def test_dispatcher_swallows_broker_failures(monkeypatch):
    task = MagicMock()
    task.delay.side_effect = ConnectionRefusedError("broker down")
    monkeypatch.setattr(index_sync_dispatch, "sync_product_index", task)

    CeleryIndexSyncDispatcher().enqueue("created", {"product_id": "p1"})

    task.delay.assert_called_once_with("p1", "created")


# Dead letters


def test_record_dead_letter_pushes_and_trims():
    client = MagicMock()
    pipe = client.pipeline.return_value

    entry = record_dead_letter("p1", "deleted", "timed out", attempts=3, task_id="t1", client=client)

    assert entry["product_id"] == "p1"
    assert entry["attempts"] == 3
    pushed_key, payload = pipe.lpush.call_args.args
    assert pushed_key == DEAD_LETTER_KEY
    assert json.loads(payload)["error"] == "timed out"
    pipe.ltrim.assert_called_once_with(DEAD_LETTER_KEY, 0, 499)


def test_record_dead_letter_survives_redis_outage():
    client = MagicMock()
    client.pipeline.return_value.execute.side_effect = RedisConnectionError("refused")

    entry = record_dead_letter("p1", "updated", "boom", attempts=3, client=client)

    assert entry["event"] == "updated"


def test_fetch_dead_letters_skips_garbage():
    client = MagicMock()
    client.lrange.return_value = [json.dumps({"product_id": "p1"}), "not-json"]

    assert fetch_dead_letters(10, client=client) == [{"product_id": "p1"}]
    client.lrange.assert_called_once_with(DEAD_LETTER_KEY, 0, 9)

    client.lrange.side_effect = RedisConnectionError("refused")
    assert fetch_dead_letters(client=client) == []
