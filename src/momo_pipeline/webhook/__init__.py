"""
Signed webhook relay to third-party endpoints.
"""

from .dispatcher import WebhookDispatcher
from .relay import WebhookRelay, build_payload, canonical_json
from .signer import HmacSigner

__all__ = [
    "HmacSigner",
    "WebhookRelay",
    "WebhookDispatcher",
    "build_payload",
    "canonical_json",
]
