"""
RawMessage model representing an inbound SMS exactly as it was received.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RawMessage(BaseModel):
    """
    An inbound SMS notification (immutable once captured).

    Attributes:
        sender: Sender address or alphanumeric id (e.g. "M-Money")
        body: Message text, verbatim
        received_at: Arrival timestamp
        line: Phone number of the receiving line, if known
        slot: SIM slot index the message arrived on, if known
    """

    sender: str = Field(..., min_length=1, max_length=64)
    body: str
    received_at: datetime = Field(default_factory=utc_now)
    line: str | None = None
    slot: int | None = Field(None, ge=0)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "sender": "M-Money",
                "body": "You have received RWF 5,000 from 0788123456. New balance RWF 12,000",
                "received_at": "2025-11-17T08:30:00Z",
                "line": "+250788000111",
                "slot": 0
            }
        }
