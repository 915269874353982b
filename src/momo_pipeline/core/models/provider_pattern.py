"""
ProviderPattern model representing one provider's SMS extraction rules.
"""

import re
from re import Pattern
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from momo_pipeline.utils.ussd import format_ussd

PATTERN_FLAGS = re.IGNORECASE


def _compile(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return re.compile(value, PATTERN_FLAGS)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern: {e}")
    return value


def _normalize_sender(sender: str) -> str:
    return re.sub(r"[\s\-_]", "", sender).lower()


def _has_group(pattern: Pattern, group: str | int) -> bool:
    if isinstance(group, int):
        return 0 <= group <= pattern.groups
    return group in pattern.groupindex


class ProviderPattern(BaseModel):
    """
    Extraction rules for one mobile-money provider in one country.

    Attributes:
        country_code: ISO 3166 alpha-2 code
        provider_code: Short provider code ("MTN", "AIRTEL", ...)
        provider_name: Display name
        currency: ISO 4217 code the provider notifies in
        sender_ids: Sender aliases the provider's SMS arrive from
        received_pattern: Matches incoming-payment notifications
        sent_pattern: Matches outgoing-payment notifications
        amount_group: Capture group (name or index) holding the amount
        party_group: Capture group (name or index) holding the counterparty
        balance_pattern: Optional pattern whose first group is the balance
        transaction_id_pattern: Optional pattern whose first group is the reference
        ussd_pay_merchant: Optional USSD template, e.g. "*182*8*1*{merchant}*{amount}#"
        is_active: Inactive providers are never matched
    """

    country_code: str = Field(..., pattern=r"^[A-Z]{2}$")
    provider_code: str = Field(..., min_length=1)
    provider_name: str = ""
    currency: str = Field(..., pattern=r"^[A-Z]{3}$")
    sender_ids: list[str] = Field(..., min_length=1)
    received_pattern: Pattern
    sent_pattern: Pattern
    amount_group: str | int = "amount"
    party_group: str | int = "party"
    balance_pattern: Pattern | None = None
    transaction_id_pattern: Pattern | None = None
    ussd_pay_merchant: str | None = None
    is_active: bool = True

    @field_validator(
        "received_pattern", "sent_pattern", "balance_pattern", "transaction_id_pattern",
        mode="before",
    )
    @classmethod
    def compile_pattern(cls, v):
        """Compile string patterns case-insensitively."""
        return _compile(v)

    @field_validator("country_code", "currency", "provider_code", mode="before")
    @classmethod
    def upper_codes(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_capture_groups(self) -> "ProviderPattern":
        """Both direction patterns must define the amount and party groups."""
        for field_name in ("received_pattern", "sent_pattern"):
            pattern = getattr(self, field_name)
            for group in (self.amount_group, self.party_group):
                if not _has_group(pattern, group):
                    raise ValueError(f"{field_name} has no capture group {group!r}")
        return self

    def matches_sender(self, sender_id: str) -> bool:
        """
        Check whether a sender id belongs to this provider.

        Comparison ignores case, spaces, hyphens and underscores; an alias
        contained in the sender (e.g. "MTN" in "MTN MoMo") also matches.
        """
        sender = _normalize_sender(sender_id or "")
        if not sender:
            return False
        for alias in self.sender_ids:
            normalized = _normalize_sender(alias)
            if normalized and (sender == normalized or normalized in sender):
                return True
        return False

    def merchant_payment_ussd(self, merchant: str, amount: str) -> str | None:
        """Fill the merchant-payment USSD template, or None if there is none."""
        if not self.ussd_pay_merchant:
            return None
        return format_ussd(self.ussd_pay_merchant, merchant=merchant, amount=amount)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "country_code": "RW",
                "provider_code": "MTN",
                "provider_name": "MTN Mobile Money",
                "currency": "RWF",
                "sender_ids": ["M-Money", "MTN"],
                "received_pattern": r"received\s+(?:RWF\s*)?(?P<amount>[\d,]+(?:\.\d+)?)\s*(?:RWF)?\s+from\s+(?P<party>[^.(]+)",
                "sent_pattern": r"(?:sent|transferred|paid)\s+(?:RWF\s*)?(?P<amount>[\d,]+(?:\.\d+)?)\s*(?:RWF)?\s+to\s+(?P<party>[^.(]+)",
                "ussd_pay_merchant": "*182*8*1*{merchant}*{amount}#"
            }
        }
