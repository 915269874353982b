"""
Unit tests for the Sync/Retry Engine.

The backend is replaced with an httpx.MockTransport that returns scripted
status codes, so every state transition can be driven deterministically.
"""

import httpx
import pytest

from momo_pipeline.core.models import DeliveryState, Direction, SyncOutcome
from momo_pipeline.errors import PersistenceError
from momo_pipeline.observability.metrics import get_sample_value
from momo_pipeline.sync import (
    BackendClient,
    InMemoryTokenWallet,
    SyncEngine,
    WalletCreditor,
)

BACKEND_URL = "https://backend.test"


@pytest.fixture
def make_engine(memory_store):
    clients = []

    def _make(backend, max_retry=3, creditor=None):
        client = BackendClient(BACKEND_URL, api_key="key", device_id="device-1", transport=backend.transport)
        clients.append(client)
        return SyncEngine(memory_store, client, max_retry=max_retry, creditor=creditor)

    yield _make

    for client in clients:
        client.close()


@pytest.mark.unit
class TestSyncEngine:
    """Tests for SyncEngine.run_sync_once"""

    def test_invalid_max_retry(self, memory_store):
        """Test that a ceiling below one is refused"""
        with pytest.raises(ValueError):
            SyncEngine(memory_store, BackendClient(BACKEND_URL), max_retry=0)

    def test_nothing_pending(self, make_engine, scripted_backend):
        """Test that an empty queue is a successful no-op"""
        backend = scripted_backend()
        report = make_engine(backend).run_sync_once()

        assert report.outcome == SyncOutcome.SUCCESS
        assert report.selected == 0
        assert backend.requests == []

    def test_mixed_responses(self, memory_store, make_record, make_engine, scripted_backend):
        """Test one 200, one 503 and one 404 in a single run"""
        a = memory_store.enqueue(make_record())
        b = memory_store.enqueue(make_record())
        c = memory_store.enqueue(make_record())
        backend = scripted_backend([200, 503, 404])

        report = make_engine(backend).run_sync_once()

        record_a, record_b, record_c = (memory_store.get(i) for i in (a, b, c))
        assert record_a.state == DeliveryState.SYNCED
        assert record_a.retry_count == 1
        assert record_a.remote_id == "remote-1"
        assert record_b.state == DeliveryState.PENDING
        assert record_b.retry_count == 1
        assert record_b.last_status_code == 503
        assert record_c.state == DeliveryState.FAILED
        assert record_c.retry_count == 1
        assert record_c.last_status_code == 404

        assert report.outcome == SyncOutcome.SUCCESS
        assert (report.selected, report.synced, report.rearmed, report.rejected) == (3, 1, 1, 1)

    def test_records_pushed_in_insertion_order(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that records are delivered oldest first"""
        ids = [memory_store.enqueue(make_record()) for _ in range(4)]
        backend = scripted_backend()

        make_engine(backend).run_sync_once()

        assert [body["localId"] for body in backend.json_bodies()] == ids

    def test_retry_ceiling(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that consecutive 5xx responses end in FAILED at the ceiling"""
        record_id = memory_store.enqueue(make_record())
        backend = scripted_backend(default=503)
        engine = make_engine(backend, max_retry=3)

        outcomes = [engine.run_sync_once().outcome for _ in range(3)]

        record = memory_store.get(record_id)
        assert outcomes == [SyncOutcome.RETRY, SyncOutcome.RETRY, SyncOutcome.FAILURE]
        assert record.state == DeliveryState.FAILED
        assert record.retry_count == 3
        assert len(backend.requests) == 3

        # Never selected again
        report = engine.run_sync_once()
        assert report.selected == 0
        assert len(backend.requests) == 3

    def test_recovers_after_transient_failures(self, memory_store, make_record, make_engine, scripted_backend):
        """Test a record that syncs on its third attempt"""
        record_id = memory_store.enqueue(make_record())
        backend = scripted_backend([500, 502, 201])
        engine = make_engine(backend)

        for _ in range(3):
            engine.run_sync_once()

        record = memory_store.get(record_id)
        assert record.state == DeliveryState.SYNCED
        assert record.retry_count == 3
        assert record.last_error is None

    def test_client_error_is_not_retried(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a 4xx response gets exactly one attempt"""
        record_id = memory_store.enqueue(make_record())
        backend = scripted_backend([422])
        engine = make_engine(backend)

        first = engine.run_sync_once()
        second = engine.run_sync_once()

        record = memory_store.get(record_id)
        assert first.outcome == SyncOutcome.FAILURE
        assert first.rejected == 1
        assert second.selected == 0
        assert record.state == DeliveryState.FAILED
        assert record.retry_count == 1
        assert "HTTP 422" in record.last_error
        assert len(backend.requests) == 1

    def test_network_error_is_transient(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a connection failure re-arms the record"""
        record_id = memory_store.enqueue(make_record())
        backend = scripted_backend([httpx.ConnectError("connection refused")])

        report = make_engine(backend).run_sync_once()

        record = memory_store.get(record_id)
        assert report.outcome == SyncOutcome.RETRY
        assert record.state == DeliveryState.PENDING
        assert record.retry_count == 1
        assert record.last_status_code is None
        assert "connection refused" in record.last_error

    def test_timeout_at_ceiling(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a timeout on the last allowed attempt is terminal"""
        record_id = memory_store.enqueue(make_record())
        backend = scripted_backend([httpx.ReadTimeout("timed out")])

        report = make_engine(backend, max_retry=1).run_sync_once()

        assert report.exhausted == 1
        assert memory_store.get(record_id).state == DeliveryState.FAILED

    def test_unexpected_client_error_is_transient(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that an unexpected exception does not abort the run"""
        first = memory_store.enqueue(make_record())
        second = memory_store.enqueue(make_record())
        backend = scripted_backend([RuntimeError("boom"), 200])

        report = make_engine(backend).run_sync_once()

        assert memory_store.get(first).state == DeliveryState.PENDING
        assert memory_store.get(second).state == DeliveryState.SYNCED
        assert report.outcome == SyncOutcome.SUCCESS

    def test_failed_record_is_rearmed(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a transient FAILED record below the ceiling is retried"""
        record_id = memory_store.enqueue(make_record())
        memory_store.update_state(record_id, DeliveryState.FAILED, retry_count=1, status_code=503)
        backend = scripted_backend([200])

        make_engine(backend).run_sync_once()

        record = memory_store.get(record_id)
        assert record.state == DeliveryState.SYNCED
        assert record.retry_count == 2
        assert backend.json_bodies()[0]["status"] == "FAILED"

    def test_stale_syncing_record_is_picked_up(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a record left in SYNCING by a crash is delivered"""
        record_id = memory_store.enqueue(make_record())
        memory_store.update_state(record_id, DeliveryState.SYNCING)
        backend = scripted_backend([200])

        make_engine(backend).run_sync_once()

        assert memory_store.get(record_id).state == DeliveryState.SYNCED

    def test_synced_without_remote_id(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a 2xx without an id still marks the record SYNCED"""
        record_id = memory_store.enqueue(make_record())
        backend = scripted_backend([(200, {"ok": True})])

        make_engine(backend).run_sync_once()

        record = memory_store.get(record_id)
        assert record.state == DeliveryState.SYNCED
        assert record.remote_id is None

    def test_request_shape(self, memory_store, make_record, make_engine, scripted_backend):
        """Test the idempotency key, credentials and payload of a push"""
        record_id = memory_store.enqueue(make_record(transaction_id="TX12345678"))
        backend = scripted_backend()

        make_engine(backend).run_sync_once()

        request = backend.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/transactions/sync"
        assert request.headers["Idempotency-Key"] == record_id
        assert request.headers["Authorization"] == "Bearer key"

        body = backend.json_bodies()[0]
        assert body["localId"] == record_id
        assert body["status"] == "PENDING"
        assert "merchantCode" not in body
        assert body["transactionId"] == "TX12345678"
        assert body["deviceId"] == "device-1"

    def test_single_flight(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a run while another is in progress is skipped"""
        memory_store.enqueue(make_record())
        backend = scripted_backend()
        engine = make_engine(backend)

        engine._running.acquire()
        try:
            report = engine.run_sync_once()
        finally:
            engine._running.release()

        assert report.skipped is True
        assert report.outcome == SyncOutcome.SUCCESS
        assert backend.requests == []

        # The lock is released again afterwards
        assert engine.run_sync_once().synced == 1

    def test_store_failure_aborts_run(self, memory_store, make_record, make_engine, scripted_backend, monkeypatch):
        """Test that a persistence error propagates and releases the run lock"""
        memory_store.enqueue(make_record())
        engine = make_engine(scripted_backend())

        def broken(*args, **kwargs):
            raise PersistenceError("disk full")

        monkeypatch.setattr(memory_store, "list_sync_candidates", broken)

        with pytest.raises(PersistenceError):
            engine.run_sync_once()

        assert engine._running.acquire(blocking=False)
        engine._running.release()

    def test_wallet_credit_after_sync(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that synced received payments are credited once"""
        received = memory_store.enqueue(make_record(amount="5000"))
        memory_store.enqueue(make_record(direction=Direction.SENT, amount="300"))
        wallet = InMemoryTokenWallet()
        engine = make_engine(scripted_backend(), creditor=WalletCreditor(memory_store, wallet))

        report = engine.run_sync_once()

        assert report.credited == 1
        assert wallet.credit_count == 1
        assert wallet.balances["RWF"] == 5000
        assert memory_store.get(received).wallet_credited is True

    def test_uncredited_payments_swept_first(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that a payment synced earlier but never credited is credited on the next run"""
        earlier = memory_store.enqueue(make_record(amount="1200"))
        memory_store.update_state(earlier, DeliveryState.SYNCED, retry_count=1, remote_id="r-1")
        backend = scripted_backend()
        wallet = InMemoryTokenWallet()

        report = make_engine(backend, creditor=WalletCreditor(memory_store, wallet)).run_sync_once()

        assert report.selected == 0
        assert report.credited == 1
        assert backend.requests == []
        assert wallet.balances["RWF"] == 1200
        assert memory_store.get(earlier).wallet_credited is True

    def test_no_creditor_leaves_flag_unset(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that without a wallet synced payments stay uncredited"""
        record_id = memory_store.enqueue(make_record())

        report = make_engine(scripted_backend()).run_sync_once()

        assert report.credited == 0
        assert memory_store.get(record_id).wallet_credited is False
        assert [r.id for r in memory_store.list_uncredited_received()] == [record_id]

    def test_invocation_metrics(self, memory_store, make_record, make_engine, scripted_backend):
        """Test that invocations are counted by outcome"""
        memory_store.enqueue(make_record())
        labels = {"outcome": "retry"}
        before = get_sample_value("momo_sync_invocations_total", labels)

        make_engine(scripted_backend([503])).run_sync_once()

        assert get_sample_value("momo_sync_invocations_total", labels) == before + 1
