"""
Content-derived reference used as the store's uniqueness key.

Carriers sometimes deliver the same notification twice. The reference is
computed from what the message says rather than when it arrived, so a
benign duplicate maps onto the record already captured.
"""

import hashlib
import json
import re

_WHITESPACE = re.compile(r"\s+")

MAX_REFERENCE_LENGTH = 255
DIGEST_PREFIX = "sha256:"


def normalize_body(body: str) -> str:
    return _WHITESPACE.sub(" ", body or "").strip()


def compute_reference(
    country_code: str,
    sender: str,
    body: str,
    provider_code: str | None = None,
    transaction_id: str | None = None,
) -> str:
    """
    Compute the content reference for a message.

    Args:
        country_code: Country the message was classified for
        sender: SMS sender address
        body: SMS text
        provider_code: Resolved provider, if any
        transaction_id: Provider transaction reference, if extracted

    Returns:
        "<PROVIDER>:<TXID>" when the provider reference is known, otherwise a
        SHA-256 digest of country, sender and whitespace-normalized body.
        A provider reference longer than MAX_REFERENCE_LENGTH is digested too.
    """
    if provider_code and transaction_id:
        reference = f"{provider_code.upper()}:{transaction_id.strip().upper()}"
        if len(reference) <= MAX_REFERENCE_LENGTH:
            return reference
        return DIGEST_PREFIX + hashlib.sha256(reference.encode("utf-8")).hexdigest()

    data = {
        "country": (country_code or "").upper(),
        "sender": (sender or "").strip().lower(),
        "body": normalize_body(body),
    }
    data_str = json.dumps(data, sort_keys=True)
    return DIGEST_PREFIX + hashlib.sha256(data_str.encode("utf-8")).hexdigest()
