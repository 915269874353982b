"""
Routing of captured transactions to webhook destinations.
"""

import re

from momo_pipeline.core.models import DeliveryLog, DeliveryResult, TransactionRecord, WebhookConfig
from momo_pipeline.core.models.raw_message import utc_now
from momo_pipeline.observability.logger import get_logger
from momo_pipeline.store.base import TransactionStore

from .relay import PAYLOAD_SOURCE, PAYLOAD_VERSION, WebhookRelay, build_payload

logger = get_logger(__name__)

TEST_MESSAGE = "MomoTerminal webhook connectivity test"
DEFAULT_MAX_DELIVERY_ATTEMPTS = 3


def _normalize_phone(phone: str | None) -> str:
    return re.sub(r"[\s\-()]", "", phone or "")


class WebhookDispatcher:
    """
    Selects the destinations for a record and relays to each of them.

    Destinations whose phone_number equals the receiving line win; when none
    match, the catch-all destinations ("" or "*") are used.
    """

    def __init__(
        self,
        relay: WebhookRelay,
        configs: list[WebhookConfig] | None = None,
        device_id: str | None = None,
    ):
        self.relay = relay
        self.configs = list(configs or [])
        self.device_id = device_id

    def destinations_for(
        self, phone_number: str | None, configs: list[WebhookConfig] | None = None
    ) -> list[WebhookConfig]:
        candidates = self.configs if configs is None else configs
        line = _normalize_phone(phone_number)

        if line:
            matching = [
                c for c in candidates
                if not c.is_catch_all and _normalize_phone(c.phone_number) == line
            ]
            if matching:
                return matching

        return [c for c in candidates if c.is_catch_all]

    def dispatch(
        self, record: TransactionRecord, configs: list[WebhookConfig] | None = None
    ) -> list[DeliveryResult]:
        """
        Relay a record to every destination routed for its receiving line.

        Args:
            record: Captured transaction
            configs: Destinations to route among (defaults to the dispatcher's)

        Returns:
            One DeliveryResult per selected destination
        """
        destinations = self.destinations_for(record.raw.line, configs)
        if not destinations:
            logger.debug("No webhook destination for line", extra={"record_id": record.id})
            return []

        payload = build_payload(record, self.device_id)
        return [self.relay.relay(config, payload, record_id=record.id) for config in destinations]

    def test_destination(self, config: WebhookConfig) -> DeliveryResult:
        """Send a signed connectivity test to one destination."""
        payload = {
            "source": PAYLOAD_SOURCE,
            "version": PAYLOAD_VERSION,
            "timestamp": utc_now().isoformat(),
            "test": True,
            "message": TEST_MESSAGE,
        }
        if self.device_id:
            payload["device_id"] = self.device_id
        return self.relay.relay(config, payload)

    def retry_failed(
        self, store: TransactionStore, max_attempts: int = DEFAULT_MAX_DELIVERY_ATTEMPTS
    ) -> list[DeliveryResult]:
        """
        Redeliver records whose latest attempt to a destination failed.

        A (destination, record) pair is retried while it has fewer than
        max_attempts logged attempts. Each retry appends a new log entry.

        Args:
            store: Store the records are read back from
            max_attempts: Attempts allowed per destination and record

        Returns:
            One DeliveryResult per redelivery
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        log_writer = self.relay.log_writer
        if log_writer is None:
            return []

        results = []
        for config in self.configs:
            if not config.is_active:
                continue

            attempts: dict[str, list[DeliveryLog]] = {}
            for entry in log_writer.list_for_webhook(config.id):
                if entry.record_id is not None:
                    attempts.setdefault(entry.record_id, []).append(entry)

            for record_id, entries in attempts.items():
                if entries[-1].status != "failed" or len(entries) >= max_attempts:
                    continue

                record = store.get(record_id)
                if record is None:
                    logger.warning(
                        "Cannot redeliver webhook, record not found",
                        extra={"webhook_id": config.id, "record_id": record_id},
                    )
                    continue

                logger.info(
                    "Redelivering webhook",
                    extra={"webhook_id": config.id, "record_id": record_id, "attempt": len(entries) + 1},
                )
                payload = build_payload(record, self.device_id)
                results.append(self.relay.relay(config, payload, record_id=record_id))

        return results
