"""
Transaction Store interface.

The store is the source of truth for captured transactions until the backend
acknowledges them. Implementations must make enqueue durable before returning
and apply each update_state call atomically.
"""

from abc import ABC, abstractmethod

from momo_pipeline.core.models import DeliveryState, TransactionRecord
from momo_pipeline.core.models.raw_message import utc_now
from momo_pipeline.errors import StoreInvariantError
from momo_pipeline.observability.logger import get_logger
from momo_pipeline.observability.metrics import increment_counter, records_enqueued_total

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 500

TERMINAL_STATES = frozenset({DeliveryState.SYNCED})


def truncate_error(error: str | None) -> str | None:
    if error is None:
        return None
    return error[:MAX_ERROR_LENGTH]


def apply_state_update(
    current: TransactionRecord,
    new_state: DeliveryState,
    error: str | None = None,
    retry_count: int | None = None,
    remote_id: str | None = None,
    status_code: int | None = None,
) -> TransactionRecord:
    """
    Compute the record that results from a state update.

    last_error and last_status_code describe the last completed attempt:
    they are kept on a move to SYNCING and replaced on every other move.

    Args:
        current: Record as currently stored
        new_state: Target delivery state
        error: Error message of the attempt, if it failed
        retry_count: New retry count, if it changes
        remote_id: Backend-assigned id, if acknowledged
        status_code: HTTP status of the attempt, if a response was received

    Returns:
        A new TransactionRecord; current is not modified

    Raises:
        StoreInvariantError: If the update leaves a terminal state, decreases
            retry_count or overwrites remote_id with a different value
    """
    if current.state in TERMINAL_STATES:
        raise StoreInvariantError(
            current.id, f"cannot move from terminal state {current.state.value} to {new_state.value}"
        )

    if retry_count is not None and retry_count < current.retry_count:
        raise StoreInvariantError(
            current.id, f"retry_count cannot decrease ({current.retry_count} -> {retry_count})"
        )

    if remote_id is not None and current.remote_id is not None and remote_id != current.remote_id:
        raise StoreInvariantError(
            current.id, f"remote_id already set to {current.remote_id!r}"
        )

    update = {
        "state": new_state,
        "updated_at": utc_now(),
    }
    if retry_count is not None:
        update["retry_count"] = retry_count
    if remote_id is not None:
        update["remote_id"] = remote_id
    if new_state != DeliveryState.SYNCING:
        update["last_error"] = truncate_error(error)
        update["last_status_code"] = status_code

    return current.model_copy(update=update)


def is_sync_candidate(record: TransactionRecord, max_retry: int) -> bool:
    """
    Whether the sync engine should pick up a record.

    PENDING and stale SYNCING records are always candidates. A FAILED record
    is re-armed only below the retry ceiling and never after a 4xx.
    """
    if record.state in (DeliveryState.PENDING, DeliveryState.SYNCING):
        return True
    if record.state == DeliveryState.FAILED:
        return record.retry_count < max_retry and not record.is_permanently_rejected
    return False


def is_uncredited_payment(record: TransactionRecord) -> bool:
    return (
        record.state == DeliveryState.SYNCED
        and record.is_received_payment
        and not record.wallet_credited
    )


class TransactionStore(ABC):
    """
    Durable local persistence of captured transactions and their delivery state.

    All methods raise PersistenceError when the underlying storage fails.
    """

    @abstractmethod
    def enqueue(self, record: TransactionRecord) -> str:
        """
        Durably insert a new record.

        Idempotent on record.reference: inserting a record whose reference is
        already stored is a no-op that returns the existing record's id.

        Args:
            record: Record to insert, normally in state PENDING

        Returns:
            Id of the stored record
        """
        pass

    @abstractmethod
    def get(self, record_id: str) -> TransactionRecord | None:
        pass

    @abstractmethod
    def get_by_reference(self, reference: str) -> TransactionRecord | None:
        pass

    @abstractmethod
    def list_by_state(self, state: DeliveryState) -> list[TransactionRecord]:
        """
        List records in a delivery state, in insertion order.

        Args:
            state: Delivery state to filter on

        Returns:
            Matching records
        """
        pass

    @abstractmethod
    def update_state(
        self,
        record_id: str,
        new_state: DeliveryState,
        error: str | None = None,
        retry_count: int | None = None,
        remote_id: str | None = None,
        status_code: int | None = None,
    ) -> TransactionRecord:
        """
        Atomically apply a delivery state transition.

        Args:
            record_id: Record to update
            new_state: Target delivery state
            error: Error message of the attempt (stored truncated)
            retry_count: New retry count
            remote_id: Backend-assigned id
            status_code: HTTP status of the attempt

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: If no record has this id
            StoreInvariantError: If the update would break a record invariant
        """
        pass

    @abstractmethod
    def list_sync_candidates(self, max_retry: int) -> list[TransactionRecord]:
        """List records the sync engine should deliver, in insertion order."""
        pass

    @abstractmethod
    def mark_wallet_credited(self, record_id: str) -> bool:
        """
        Set the wallet-credit flag if it is not set yet.

        Returns:
            True if this call set the flag, False if it was already set

        Raises:
            RecordNotFoundError: If no record has this id
        """
        pass

    @abstractmethod
    def list_uncredited_received(self) -> list[TransactionRecord]:
        """List synced received payments whose wallet credit was never applied."""
        pass

    @abstractmethod
    def count_by_state(self) -> dict[DeliveryState, int]:
        pass

    def _log_enqueue(self, record: TransactionRecord, stored_id: str, inserted: bool) -> None:
        status = "inserted" if inserted else "duplicate"
        increment_counter(records_enqueued_total, status=status)
        logger.info(
            "Transaction record enqueued" if inserted else "Duplicate message ignored",
            extra={
                "record_id": stored_id,
                "reference": record.reference,
                "country_code": record.country_code,
                "direction": record.parsed.direction.value,
                "status": status,
            },
        )

    def _log_transition(self, before: TransactionRecord, after: TransactionRecord) -> None:
        logger.info(
            "Record state updated",
            extra={
                "record_id": after.id,
                "from_state": before.state.value,
                "state": after.state.value,
                "retry_count": after.retry_count,
                "status_code": after.last_status_code,
                "remote_id": after.remote_id,
            },
        )
