"""
Backend synchronization: HTTP client, retry engine and wallet crediting.
"""

from .backend_client import BackendClient, SyncResponse
from .engine import DEFAULT_MAX_RETRY, SyncEngine
from .wallet import (
    InMemoryTokenWallet,
    TokenWallet,
    WalletCreditor,
    WalletCreditResult,
)

__all__ = [
    "BackendClient",
    "SyncResponse",
    "DEFAULT_MAX_RETRY",
    "SyncEngine",
    "TokenWallet",
    "InMemoryTokenWallet",
    "WalletCreditor",
    "WalletCreditResult",
]
