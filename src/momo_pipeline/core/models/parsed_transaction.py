"""
ParsedTransaction model representing the structured fields of a notification.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from .enums import Direction, ParserKind


class ParsedTransaction(BaseModel):
    """
    Fields extracted from a RawMessage.

    Attributes:
        amount: Transaction amount in major currency units
        currency: ISO 4217 code, always taken from provider configuration
        party: Counterparty label (phone number or name)
        transaction_id: Provider transaction reference, if present
        balance: Post-transaction balance, if present
        direction: Money movement direction
        confidence: 1.0 for an exact pattern match, lower for heuristics
        parser: Which parser produced the result
        provider_code: Provider code from the registry, if resolved
        provider_name: Provider display name, if resolved
    """

    amount: Decimal = Decimal("0")
    currency: str = Field(..., pattern=r"^[A-Z]{3}$")
    party: str | None = None
    transaction_id: str | None = None
    balance: Decimal | None = None
    direction: Direction = Direction.UNKNOWN
    confidence: float = Field(..., ge=0.0, le=1.0)
    parser: ParserKind = ParserKind.PATTERN
    provider_code: str | None = None
    provider_name: str | None = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "amount": "5000",
                "currency": "RWF",
                "party": "0788123456",
                "transaction_id": None,
                "balance": "12000",
                "direction": "RECEIVED",
                "confidence": 1.0,
                "parser": "pattern",
                "provider_code": "MTN",
                "provider_name": "MTN Mobile Money"
            }
        }
