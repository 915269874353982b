"""
HTTP client for the remote ledger backend.
"""

import json
from dataclasses import dataclass
from typing import Any

import httpx

from momo_pipeline.core.models import TransactionRecord
from momo_pipeline.errors import TransportError

SYNC_PATH = "/transactions/sync"


@dataclass(frozen=True)
class SyncResponse:
    """Backend response to one record push."""

    status_code: int
    remote_id: str | None = None
    body: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class BackendClient:
    """
    Pushes transaction records to the backend over HTTP.

    Each request carries the record id as its Idempotency-Key, so a retry of
    a request the backend already applied is recognised as a duplicate.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        device_id: str | None = None,
        merchant_code: str | None = None,
        timeout: float = 30.0,
        sync_path: str = SYNC_PATH,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the backend client.

        Args:
            base_url: Backend base URL
            api_key: Bearer credential
            device_id: Sent as deviceId in every payload
            merchant_code: Sent as merchantCode in every payload
            timeout: Per-request timeout in seconds
            sync_path: Path of the sync endpoint
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.device_id = device_id
        self.merchant_code = merchant_code
        self.sync_path = sync_path

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def push(self, record: TransactionRecord) -> SyncResponse:
        """
        Send one record to the backend.

        Args:
            record: Record to deliver

        Returns:
            SyncResponse for any HTTP response, 2xx or not

        Raises:
            TransportError: On network failure or timeout
        """
        body = json.dumps(record.to_sync_payload(self.device_id, self.merchant_code))

        try:
            response = self._client.post(
                self.sync_path,
                content=body.encode("utf-8"),
                headers={"Idempotency-Key": record.id},
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request error: {e}") from e

        remote_id = None
        if 200 <= response.status_code < 300:
            remote_id = _extract_remote_id(response)

        return SyncResponse(
            status_code=response.status_code,
            remote_id=remote_id,
            body=response.text,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _extract_remote_id(response: httpx.Response) -> str | None:
    try:
        data: Any = response.json()
    except ValueError:
        return None

    if isinstance(data, dict):
        for key in ("id", "remoteId", "remote_id"):
            value = data.get(key)
            if value not in (None, ""):
                return str(value)
        inner = data.get("data")
        if isinstance(inner, dict) and inner.get("id") not in (None, ""):
            return str(inner["id"])
    return None
