"""
Integration tests for the PostgreSQL Transaction Store and delivery log.

Runs against a real PostgreSQL instance started with Testcontainers.
"""

import threading
from decimal import Decimal

import pytest

from momo_pipeline.core.models import DeliveryLog, DeliveryState, Direction
from momo_pipeline.errors import RecordNotFoundError, StoreInvariantError
from momo_pipeline.store import MAX_ERROR_LENGTH, PostgresDeliveryLogWriter, PostgresTransactionStore


@pytest.fixture
def store(clean_db):
    return PostgresTransactionStore(clean_db)


@pytest.mark.integration
def test_enqueue_round_trip(store, make_record):
    """Test that a stored record reads back with all fields intact."""
    record = make_record(amount="5000", transaction_id="TX12345678")

    assert store.enqueue(record) == record.id

    stored = store.get(record.id)
    assert stored.reference == record.reference
    assert stored.country_code == "RW"
    assert stored.raw == record.raw
    assert stored.parsed.amount == Decimal("5000")
    assert stored.parsed.direction == Direction.RECEIVED
    assert stored.state == DeliveryState.PENDING
    assert store.get_by_reference(record.reference).id == record.id
    assert store.get("missing") is None


@pytest.mark.integration
def test_enqueue_is_idempotent_on_reference(store, make_record, clean_db):
    """Test that a second insert with the same reference returns the first id."""
    body = "You have received RWF 100 from 0788000001."
    first, second = make_record(body=body), make_record(body=body)

    assert store.enqueue(first) == first.id
    assert store.enqueue(second) == first.id

    count = clean_db.execute_query("SELECT COUNT(*) AS n FROM transaction_record")[0]["n"]
    assert count == 1


@pytest.mark.integration
def test_concurrent_enqueue(store, make_record, clean_db):
    """Test that racing inserts of one message store a single row."""
    body = "You have received RWF 900 from 0788000009."
    records = [make_record(body=body) for _ in range(5)]
    results = []

    threads = [threading.Thread(target=lambda r=r: results.append(store.enqueue(r))) for r in records]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(set(results)) == 1
    assert clean_db.execute_query("SELECT COUNT(*) AS n FROM transaction_record")[0]["n"] == 1


@pytest.mark.integration
def test_update_state_transitions(store, make_record):
    """Test a retry followed by a successful sync."""
    record_id = store.enqueue(make_record())

    store.update_state(record_id, DeliveryState.SYNCING)
    store.update_state(record_id, DeliveryState.PENDING, error="x" * 900, retry_count=1, status_code=503)
    rearmed = store.get(record_id)
    assert rearmed.retry_count == 1
    assert len(rearmed.last_error) == MAX_ERROR_LENGTH
    assert rearmed.last_status_code == 503

    synced = store.update_state(record_id, DeliveryState.SYNCED, retry_count=2, remote_id="r-1", status_code=200)
    assert synced.state == DeliveryState.SYNCED
    assert store.get(record_id).remote_id == "r-1"
    assert store.get(record_id).last_error is None


@pytest.mark.integration
def test_update_state_invariants(store, make_record):
    """Test that invalid updates are refused and leave the row unchanged."""
    record_id = store.enqueue(make_record())
    store.update_state(record_id, DeliveryState.PENDING, retry_count=2)

    with pytest.raises(StoreInvariantError):
        store.update_state(record_id, DeliveryState.PENDING, retry_count=1)

    store.update_state(record_id, DeliveryState.SYNCED, retry_count=3, remote_id="r-1")
    with pytest.raises(StoreInvariantError):
        store.update_state(record_id, DeliveryState.PENDING)

    assert store.get(record_id).state == DeliveryState.SYNCED

    with pytest.raises(RecordNotFoundError):
        store.update_state("missing", DeliveryState.SYNCING)


@pytest.mark.integration
def test_sync_candidates_and_counts(store, make_record):
    """Test candidate selection order and per-state counts."""
    pending = store.enqueue(make_record())
    transient = store.enqueue(make_record())
    store.update_state(transient, DeliveryState.FAILED, retry_count=1, status_code=502)
    rejected = store.enqueue(make_record())
    store.update_state(rejected, DeliveryState.FAILED, retry_count=1, status_code=409)
    exhausted = store.enqueue(make_record())
    store.update_state(exhausted, DeliveryState.FAILED, retry_count=3, status_code=503)
    syncing = store.enqueue(make_record())
    store.update_state(syncing, DeliveryState.SYNCING)

    assert [r.id for r in store.list_sync_candidates(3)] == [pending, transient, syncing]
    assert [r.id for r in store.list_by_state(DeliveryState.FAILED)] == [transient, rejected, exhausted]
    assert store.count_by_state() == {
        DeliveryState.PENDING: 1,
        DeliveryState.SYNCING: 1,
        DeliveryState.SYNCED: 0,
        DeliveryState.FAILED: 3,
    }


@pytest.mark.integration
def test_wallet_credit_flag(store, make_record):
    """Test the compare-and-set flag and the uncredited listing."""
    received = store.enqueue(make_record(amount="2500"))
    sent = store.enqueue(make_record(direction=Direction.SENT))
    for record_id in (received, sent):
        store.update_state(record_id, DeliveryState.SYNCED, retry_count=1)

    assert [r.id for r in store.list_uncredited_received()] == [received]
    assert store.mark_wallet_credited(received) is True
    assert store.mark_wallet_credited(received) is False
    assert store.list_uncredited_received() == []

    with pytest.raises(RecordNotFoundError):
        store.mark_wallet_credited("missing")


@pytest.mark.integration
def test_delivery_log_append(clean_db):
    """Test that delivery attempts are appended with increasing ids."""
    writer = PostgresDeliveryLogWriter(clean_db)

    first = writer.append(DeliveryLog(webhook_id="wh-1", status="sent", response_code=200, record_id="r-1"))
    second = writer.append(DeliveryLog(webhook_id="wh-1", status="failed", response_code=None))
    writer.append(DeliveryLog(webhook_id="wh-2", status="sent", response_code=204))

    assert second.log_id > first.log_id
    entries = writer.list_for_webhook("wh-1")
    assert [e.log_id for e in entries] == [first.log_id, second.log_id]
    assert entries[0].record_id == "r-1"
    assert entries[1].response_code is None
