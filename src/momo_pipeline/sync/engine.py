"""
Sync/Retry Engine.

Pushes pending records to the backend and drives the delivery state machine:

    PENDING -> SYNCING -> SYNCED
                       -> PENDING  (5xx or network error below the ceiling)
                       -> FAILED   (4xx, or 5xx/network error at the ceiling)

The engine does no scheduling of its own. An external trigger calls
run_sync_once() periodically or right after a capture.
"""

import threading

from momo_pipeline.core.models import DeliveryState, SyncOutcome, SyncReport, TransactionRecord
from momo_pipeline.errors import TransportError
from momo_pipeline.observability.logger import get_logger, log_operation
from momo_pipeline.observability.metrics import (
    increment_counter,
    observe_histogram,
    sync_attempts_total,
    sync_duration_seconds,
    sync_invocations_total,
)
from momo_pipeline.store import TransactionStore

from .backend_client import BackendClient
from .wallet import WalletCreditor

logger = get_logger(__name__)

DEFAULT_MAX_RETRY = 3

SYNCED = "synced"
REARMED = "rearmed"
REJECTED = "rejected"
EXHAUSTED = "exhausted"


class SyncEngine:
    """
    Delivers pending transaction records to the backend.

    Records of one invocation are processed sequentially in insertion order.
    Only one invocation runs at a time; a concurrent call returns a skipped
    report immediately.
    """

    def __init__(
        self,
        store: TransactionStore,
        client: BackendClient,
        max_retry: int = DEFAULT_MAX_RETRY,
        creditor: WalletCreditor | None = None,
    ):
        """
        Initialize the sync engine.

        Args:
            store: Transaction store
            client: Backend HTTP client
            max_retry: Attempts allowed per record before terminal FAILED
            creditor: Applies wallet credits for synced received payments; when
                set, each run first sweeps synced payments still uncredited
        """
        if max_retry < 1:
            raise ValueError(f"max_retry must be at least 1, got {max_retry}")

        self.store = store
        self.client = client
        self.max_retry = max_retry
        self.creditor = creditor
        self._running = threading.Lock()

    def run_sync_once(self) -> SyncReport:
        """
        Run one sync invocation.

        Returns:
            SyncReport whose outcome is SUCCESS when nothing was pending or
            at least one record synced, RETRY when some record was re-armed,
            FAILURE otherwise

        Raises:
            PersistenceError: If the store fails; the invocation is aborted and
                records left in SYNCING are picked up by the next run
        """
        if not self._running.acquire(blocking=False):
            increment_counter(sync_invocations_total, outcome="skipped")
            logger.info("Sync already in progress, skipping invocation")
            return SyncReport(outcome=SyncOutcome.SUCCESS, skipped=True)

        try:
            with log_operation("Sync run", logger=logger, max_retry=self.max_retry) as op:
                report = self._run()
            report = report.model_copy(update={"duration_seconds": round(op.duration, 3)})
        finally:
            self._running.release()

        observe_histogram(sync_duration_seconds, report.duration_seconds)
        increment_counter(sync_invocations_total, outcome=report.outcome.value)
        logger.info("Sync run summary", extra=report.model_dump(mode="json"))
        return report

    def _run(self) -> SyncReport:
        credited = 0
        if self.creditor is not None:
            # Synced payments whose credit failed or was interrupted last time
            credited += self.creditor.credit_pending()

        candidates = self.store.list_sync_candidates(self.max_retry)
        counts = {SYNCED: 0, REARMED: 0, REJECTED: 0, EXHAUSTED: 0}

        for record in candidates:
            result, updated = self._sync_record(record)
            counts[result] += 1

            if result == SYNCED and self.creditor is not None and updated.is_received_payment:
                if self.creditor.credit(updated):
                    credited += 1

        if not candidates or counts[SYNCED] > 0:
            outcome = SyncOutcome.SUCCESS
        elif counts[REARMED] > 0:
            outcome = SyncOutcome.RETRY
        else:
            outcome = SyncOutcome.FAILURE

        return SyncReport(
            outcome=outcome,
            selected=len(candidates),
            synced=counts[SYNCED],
            rearmed=counts[REARMED],
            rejected=counts[REJECTED],
            exhausted=counts[EXHAUSTED],
            credited=credited,
        )

    def _sync_record(self, record: TransactionRecord) -> tuple[str, TransactionRecord]:
        attempt = record.retry_count + 1
        self.store.update_state(record.id, DeliveryState.SYNCING)

        try:
            # The payload carries the state the record was selected in
            response = self.client.push(record)
        except TransportError as e:
            return self._transient(record.id, attempt, str(e), None)
        except Exception as e:
            logger.exception("Unexpected error pushing record", extra={"record_id": record.id})
            return self._transient(record.id, attempt, f"{type(e).__name__}: {e}", None)

        if response.is_success:
            if response.remote_id is None:
                logger.warning(
                    "Backend acknowledged record without an id",
                    extra={"record_id": record.id, "status_code": response.status_code},
                )
            increment_counter(sync_attempts_total, result="synced")
            updated = self.store.update_state(
                record.id,
                DeliveryState.SYNCED,
                retry_count=attempt,
                remote_id=response.remote_id,
                status_code=response.status_code,
            )
            return SYNCED, updated

        error = f"HTTP {response.status_code}: {response.body[:200]}"

        if response.is_client_error:
            increment_counter(sync_attempts_total, result="rejected")
            logger.warning(
                "Backend rejected record",
                extra={"record_id": record.id, "status_code": response.status_code},
            )
            updated = self.store.update_state(
                record.id,
                DeliveryState.FAILED,
                error=error,
                retry_count=attempt,
                status_code=response.status_code,
            )
            return REJECTED, updated

        return self._transient(record.id, attempt, error, response.status_code)

    def _transient(
        self, record_id: str, attempt: int, error: str, status_code: int | None
    ) -> tuple[str, TransactionRecord]:
        increment_counter(sync_attempts_total, result="transient")
        exhausted = attempt >= self.max_retry
        new_state = DeliveryState.FAILED if exhausted else DeliveryState.PENDING

        logger.warning(
            "Transient delivery failure",
            extra={
                "record_id": record_id,
                "retry_count": attempt,
                "status_code": status_code,
                "state": new_state.value,
                "error_message": error,
            },
        )
        updated = self.store.update_state(
            record_id,
            new_state,
            error=error,
            retry_count=attempt,
            status_code=status_code,
        )
        return (EXHAUSTED if exhausted else REARMED), updated
