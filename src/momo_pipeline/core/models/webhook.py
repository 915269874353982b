"""
Webhook destination, delivery log and delivery result models.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .raw_message import utc_now


class WebhookConfig(BaseModel):
    """
    A user-configured third-party endpoint receiving relayed transactions.

    Attributes:
        id: Destination id
        name: Display name
        url: Endpoint receiving the POST
        phone_number: Receiving line this destination is routed for ("*" or "" = all)
        api_key: Sent as the bearer credential
        hmac_secret: Key for the X-Webhook-Signature HMAC
        is_active: Inactive destinations are skipped without a delivery log
    """

    id: str = Field(..., min_length=1)
    name: str = ""
    url: str = Field(..., pattern=r"^https?://")
    phone_number: str = "*"
    api_key: str = Field("", repr=False)
    hmac_secret: str = Field(..., min_length=1, repr=False)
    is_active: bool = True

    @property
    def is_catch_all(self) -> bool:
        return self.phone_number.strip() in ("", "*")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "wh_accounting",
                "name": "Accounting ERP",
                "url": "https://erp.example.com/hooks/momo",
                "phone_number": "+250788000111",
                "api_key": "key_live_xxx",
                "hmac_secret": "whsec_xxx",
                "is_active": True
            }
        }


class DeliveryLog(BaseModel):
    """
    Append-only record of one webhook delivery attempt.

    Attributes:
        log_id: Assigned by the log writer
        webhook_id: Destination id
        record_id: TransactionRecord id, if the payload came from one
        phone_number: Receiving line of the relayed message
        sender: SMS sender of the relayed message
        status: "sent" for 2xx, "failed" otherwise
        response_code: HTTP status, None on network failure
        response_body: Response text (or error), truncated
        processing_time_ms: Round-trip latency
        sent_at: Delivery time for successful attempts
        created_at: When the attempt was logged
    """

    log_id: int | None = None
    webhook_id: str
    record_id: str | None = None
    phone_number: str | None = None
    sender: str | None = None
    status: Literal["sent", "failed"]
    response_code: int | None = None
    response_body: str | None = None
    processing_time_ms: int = Field(0, ge=0)
    sent_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)


class DeliveryResult(BaseModel):
    """
    Outcome of one relay call returned to the caller.

    Inactive destinations produce success=True, skipped=True.
    """

    webhook_id: str
    success: bool
    skipped: bool = False
    status_code: int | None = None
    processing_time_ms: int | None = None
    error: str | None = None
