"""
Webhook Relay.

Signs and forwards transaction payloads to user-configured endpoints and
appends the outcome of every attempt to the delivery log.
"""

import json
import time
from typing import Any

import httpx

from momo_pipeline.core.models import DeliveryLog, DeliveryResult, TransactionRecord, WebhookConfig
from momo_pipeline.core.models.raw_message import utc_now
from momo_pipeline.observability.logger import get_logger
from momo_pipeline.observability.metrics import (
    increment_counter,
    observe_histogram,
    webhook_deliveries_total,
    webhook_latency_seconds,
)
from momo_pipeline.store import DeliveryLogWriter

from .signer import HmacSigner

logger = get_logger(__name__)

PAYLOAD_SOURCE = "momoterminal"
PAYLOAD_VERSION = "1.0"
MAX_RESPONSE_BODY_LENGTH = 1000

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
DEVICE_ID_HEADER = "X-Webhook-Device-Id"


def canonical_json(payload: dict[str, Any]) -> bytes:
    """
    Serialize a payload deterministically.

    Keys are sorted and separators compact, so equal payloads always produce
    identical bytes.
    """
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def build_payload(record: TransactionRecord, device_id: str | None = None) -> dict[str, Any]:
    """
    Build the webhook payload for a captured transaction.

    Args:
        record: Captured transaction
        device_id: Identifier of the capturing device

    Returns:
        Payload dict; fields that are unknown are omitted
    """
    parsed = record.parsed
    payload = {
        "source": PAYLOAD_SOURCE,
        "version": PAYLOAD_VERSION,
        "timestamp": record.raw.received_at.isoformat(),
        "phone_number": record.raw.line,
        "sender": record.raw.sender,
        "message": record.raw.body,
        "device_id": device_id,
        "record_id": record.id,
        "direction": parsed.direction.value,
        "amount": float(parsed.amount),
        "currency": parsed.currency,
        "party": parsed.party,
        "transaction_id": parsed.transaction_id,
        "balance": float(parsed.balance) if parsed.balance is not None else None,
        "provider": parsed.provider_code,
        "confidence": parsed.confidence,
    }
    return {key: value for key, value in payload.items() if value is not None}


class WebhookRelay:
    """
    Delivers signed payloads to webhook destinations.

    Each relay call makes at most one HTTP attempt; failures are returned as
    values and logged, never raised.
    """

    def __init__(
        self,
        log_writer: DeliveryLogWriter | None = None,
        timeout: float = 30.0,
        device_id: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the relay.

        Args:
            log_writer: Delivery log; attempts are not logged when None
            timeout: Per-request timeout in seconds
            device_id: Sent in the X-Webhook-Device-Id header
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.log_writer = log_writer
        self.device_id = device_id
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def relay(
        self,
        config: WebhookConfig,
        payload: dict[str, Any],
        record_id: str | None = None,
    ) -> DeliveryResult:
        """
        Sign and POST a payload to one destination.

        Args:
            config: Destination
            payload: JSON-serializable payload
            record_id: Originating record, stored in the delivery log

        Returns:
            DeliveryResult; an inactive destination yields success with
            skipped=True, no HTTP call and no delivery log entry
        """
        if not config.is_active:
            increment_counter(webhook_deliveries_total, status="skipped")
            logger.debug("Webhook inactive, skipping delivery", extra={"webhook_id": config.id})
            return DeliveryResult(webhook_id=config.id, success=True, skipped=True)

        body = canonical_json(payload)
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: HmacSigner(config.hmac_secret).sign_hex(body),
            TIMESTAMP_HEADER: utc_now().isoformat(),
        }
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        if self.device_id:
            headers[DEVICE_ID_HEADER] = self.device_id

        status_code = None
        error = None
        start = time.monotonic()
        try:
            response = self._client.post(config.url, content=body, headers=headers)
            status_code = response.status_code
            response_body = response.text[:MAX_RESPONSE_BODY_LENGTH]
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # InvalidURL and header encoding errors are not HTTPError subclasses
            error = f"{type(e).__name__}: {e}"
            response_body = error[:MAX_RESPONSE_BODY_LENGTH]
        elapsed = time.monotonic() - start
        processing_time_ms = int(elapsed * 1000)

        success = status_code is not None and 200 <= status_code < 300
        if status_code is not None and not success:
            error = f"HTTP {status_code}"

        status = "sent" if success else "failed"
        increment_counter(webhook_deliveries_total, status=status)
        observe_histogram(webhook_latency_seconds, elapsed)

        log_extra = {
            "webhook_id": config.id,
            "record_id": record_id,
            "status_code": status_code,
            "processing_time_ms": processing_time_ms,
            "status": status,
        }
        if success:
            logger.info("Webhook delivered", extra=log_extra)
        else:
            logger.warning("Webhook delivery failed", extra={**log_extra, "error_message": error})

        self._append_log(
            DeliveryLog(
                webhook_id=config.id,
                record_id=record_id,
                phone_number=payload.get("phone_number"),
                sender=payload.get("sender"),
                status=status,
                response_code=status_code,
                response_body=response_body,
                processing_time_ms=processing_time_ms,
                sent_at=utc_now() if success else None,
            )
        )

        return DeliveryResult(
            webhook_id=config.id,
            success=success,
            status_code=status_code,
            processing_time_ms=processing_time_ms,
            error=error,
        )

    def _append_log(self, entry: DeliveryLog) -> None:
        if self.log_writer is None:
            return
        try:
            self.log_writer.append(entry)
        except Exception as e:
            logger.error(
                "Failed to write delivery log",
                extra={
                    "webhook_id": entry.webhook_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
