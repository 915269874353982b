"""
TransactionRecord model: the persisted unit of the capture pipeline.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import DeliveryState, Direction
from .parsed_transaction import ParsedTransaction
from .raw_message import RawMessage, utc_now


def new_record_id() -> str:
    return str(uuid.uuid4())


class TransactionRecord(BaseModel):
    """
    A captured notification and its delivery state.

    The id is generated on the device and stays stable across retries, so it
    doubles as the idempotency key forwarded to the backend.

    Attributes:
        id: Client-generated unique id
        reference: Content-derived reference (uniqueness key)
        country_code: ISO 3166 alpha-2 country the message was classified for
        raw: Verbatim inbound message, kept for audit and reprocessing
        parsed: Extracted fields
        state: Delivery state
        retry_count: Delivery attempts made so far (never decreases)
        last_error: Last delivery error message, truncated
        last_status_code: HTTP status of the last attempt, if any
        remote_id: Backend-assigned id, set at most once
        wallet_credited: Whether the wallet was credited for this record
        created_at: When the record was captured
        updated_at: Last state change
    """

    id: str = Field(default_factory=new_record_id, min_length=1)
    reference: str = Field(..., min_length=1, max_length=255)
    country_code: str = Field(..., pattern=r"^[A-Z]{2}$")
    raw: RawMessage
    parsed: ParsedTransaction
    state: DeliveryState = DeliveryState.PENDING
    retry_count: int = Field(0, ge=0)
    last_error: str | None = None
    last_status_code: int | None = None
    remote_id: str | None = None
    wallet_credited: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_received_payment(self) -> bool:
        return self.parsed.direction == Direction.RECEIVED and self.parsed.amount > 0

    @property
    def is_permanently_rejected(self) -> bool:
        """True for records the backend refused with a 4xx status."""
        return (
            self.state == DeliveryState.FAILED
            and self.last_status_code is not None
            and 400 <= self.last_status_code < 500
        )

    def to_sync_payload(
        self, device_id: str | None = None, merchant_code: str | None = None
    ) -> dict[str, Any]:
        """
        Build the JSON body sent to the backend for this record.

        Optional fields are omitted when unknown.
        """
        payload: dict[str, Any] = {
            "localId": self.id,
            "sender": self.raw.sender,
            "body": self.raw.body,
            "timestamp": self.raw.received_at.isoformat(),
            "status": self.state.value,
            "direction": self.parsed.direction.value,
            "amount": float(self.parsed.amount),
            "currency": self.parsed.currency,
            "transactionId": self.parsed.transaction_id,
            "provider": self.parsed.provider_code,
            "providerType": self.parsed.parser.value,
            "deviceId": device_id,
            "merchantCode": merchant_code,
        }
        return {key: value for key, value in payload.items() if value is not None}

    class Config:
        json_schema_extra = {
            "example": {
                "id": "6f1c2b9e-8a51-4d0c-9d59-1b2f7f0b4a11",
                "reference": "MTN:TX12345678",
                "country_code": "RW",
                "state": "PENDING",
                "retry_count": 0,
                "last_error": None,
                "last_status_code": None,
                "remote_id": None,
                "wallet_credited": False
            }
        }
