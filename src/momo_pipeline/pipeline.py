"""
Capture entry point: classify an inbound SMS and queue it durably.
"""

from dataclasses import dataclass
from typing import Callable

from momo_pipeline.core.models import RawMessage, TransactionRecord
from momo_pipeline.core.parsing import MessageClassifier, compute_reference
from momo_pipeline.observability.logger import get_logger
from momo_pipeline.store import TransactionStore
from momo_pipeline.utils.validation import validate_country_code

logger = get_logger(__name__)

NOT_FINANCIAL = "not_financial"
SAVED = "saved"
DUPLICATE = "duplicate"


@dataclass(frozen=True)
class CaptureResult:
    """
    Outcome of capturing one message.

    Attributes:
        status: "not_financial", "saved" or "duplicate"
        record_id: Id of the stored record (new or pre-existing)
        record: The stored record, if any
    """

    status: str
    record_id: str | None = None
    record: TransactionRecord | None = None

    @property
    def is_financial(self) -> bool:
        return self.status != NOT_FINANCIAL


class CapturePipeline:
    """
    Classifies inbound messages and enqueues financial ones as PENDING records.

    The record is written before capture returns, so an accepted message is
    never lost between classification and queuing. An optional on_captured
    hook (an on-demand sync trigger, a webhook dispatch) runs after a new
    record is saved; its failures are logged and never undo the capture.
    """

    def __init__(
        self,
        classifier: MessageClassifier,
        store: TransactionStore,
        on_captured: Callable[[TransactionRecord], object] | None = None,
    ):
        self.classifier = classifier
        self.store = store
        self.on_captured = on_captured

    def capture(self, raw: RawMessage, country_code: str) -> CaptureResult:
        """
        Capture one inbound message.

        Args:
            raw: Inbound SMS
            country_code: Country of the receiving device

        Returns:
            CaptureResult

        Raises:
            PersistenceError: If the record cannot be stored
        """
        country_code = validate_country_code(country_code)

        parsed = self.classifier.classify(country_code, raw.sender, raw.body)
        if parsed is None:
            logger.debug("Message is not a financial notification", extra={"sender": raw.sender})
            return CaptureResult(status=NOT_FINANCIAL)

        record = TransactionRecord(
            reference=compute_reference(
                country_code,
                raw.sender,
                raw.body,
                provider_code=parsed.provider_code,
                transaction_id=parsed.transaction_id,
            ),
            country_code=country_code,
            raw=raw,
            parsed=parsed,
        )

        stored_id = self.store.enqueue(record)
        if stored_id != record.id:
            return CaptureResult(status=DUPLICATE, record_id=stored_id, record=self.store.get(stored_id))

        if self.on_captured is not None:
            try:
                self.on_captured(record)
            except Exception as e:
                logger.error(
                    "Post-capture hook failed",
                    extra={
                        "record_id": record.id,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                )

        return CaptureResult(status=SAVED, record_id=stored_id, record=record)
