"""
HMAC-SHA256 signing of webhook request bodies.
"""

import base64
import hashlib
import hmac


class HmacSigner:
    """
    Signs request bodies with a per-destination secret.

    Signatures are computed over bytes. Callers sign exactly the bytes they
    transmit, never a re-serialization of the payload.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("HMAC secret must not be empty")
        self._key = secret.encode("utf-8")

    def _digest(self, body: bytes | str) -> bytes:
        if isinstance(body, str):
            body = body.encode("utf-8")
        return hmac.new(self._key, body, hashlib.sha256).digest()

    def sign_hex(self, body: bytes | str) -> str:
        """Hex-encoded HMAC-SHA256 of body."""
        return self._digest(body).hex()

    def sign(self, body: bytes | str) -> str:
        """Base64-encoded HMAC-SHA256 of body."""
        return base64.b64encode(self._digest(body)).decode("ascii")

    def verify_hex(self, body: bytes | str, signature: str) -> bool:
        return hmac.compare_digest(self.sign_hex(body), (signature or "").lower())

    def verify(self, body: bytes | str, signature: str) -> bool:
        return hmac.compare_digest(self.sign(body), signature or "")
