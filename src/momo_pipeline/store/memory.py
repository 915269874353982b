"""
In-memory Transaction Store.

Used by tests, the CLI's default mode, and anywhere durability across
process restarts is not required.
"""

import threading

from momo_pipeline.core.models import DeliveryState, TransactionRecord
from momo_pipeline.core.models.raw_message import utc_now
from momo_pipeline.errors import RecordNotFoundError

from .base import (
    TransactionStore,
    apply_state_update,
    is_sync_candidate,
    is_uncredited_payment,
)


class InMemoryTransactionStore(TransactionStore):
    """
    Dict-backed store guarded by a re-entrant lock.

    Records are replaced wholesale on update, so a reader never observes a
    partially applied transition.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: dict[str, TransactionRecord] = {}
        self._by_reference: dict[str, str] = {}

    def enqueue(self, record: TransactionRecord) -> str:
        with self._lock:
            existing_id = self._by_reference.get(record.reference)
            if existing_id is not None:
                self._log_enqueue(record, existing_id, inserted=False)
                return existing_id

            if record.id in self._records:
                raise ValueError(f"Record id already used: {record.id}")

            self._records[record.id] = record.model_copy(deep=True)
            self._by_reference[record.reference] = record.id

        self._log_enqueue(record, record.id, inserted=True)
        return record.id

    def get(self, record_id: str) -> TransactionRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def get_by_reference(self, reference: str) -> TransactionRecord | None:
        with self._lock:
            record_id = self._by_reference.get(reference)
            return self._records.get(record_id) if record_id else None

    def list_by_state(self, state: DeliveryState) -> list[TransactionRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.state == state]

    def update_state(
        self,
        record_id: str,
        new_state: DeliveryState,
        error: str | None = None,
        retry_count: int | None = None,
        remote_id: str | None = None,
        status_code: int | None = None,
    ) -> TransactionRecord:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise RecordNotFoundError(record_id)

            updated = apply_state_update(
                current,
                new_state,
                error=error,
                retry_count=retry_count,
                remote_id=remote_id,
                status_code=status_code,
            )
            self._records[record_id] = updated

        self._log_transition(current, updated)
        return updated

    def list_sync_candidates(self, max_retry: int) -> list[TransactionRecord]:
        with self._lock:
            return [r for r in self._records.values() if is_sync_candidate(r, max_retry)]

    def mark_wallet_credited(self, record_id: str) -> bool:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise RecordNotFoundError(record_id)
            if current.wallet_credited:
                return False

            self._records[record_id] = current.model_copy(
                update={"wallet_credited": True, "updated_at": utc_now()}
            )
            return True

    def list_uncredited_received(self) -> list[TransactionRecord]:
        with self._lock:
            return [r for r in self._records.values() if is_uncredited_payment(r)]

    def count_by_state(self) -> dict[DeliveryState, int]:
        with self._lock:
            counts = {state: 0 for state in DeliveryState}
            for record in self._records.values():
                counts[record.state] += 1
            return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
