"""
Transaction Store and webhook delivery log persistence.
"""

from .base import MAX_ERROR_LENGTH, TransactionStore
from .delivery_log import (
    DeliveryLogWriter,
    InMemoryDeliveryLogWriter,
    PostgresDeliveryLogWriter,
)
from .memory import InMemoryTransactionStore
from .postgres import PostgresTransactionStore

__all__ = [
    "MAX_ERROR_LENGTH",
    "TransactionStore",
    "InMemoryTransactionStore",
    "PostgresTransactionStore",
    "DeliveryLogWriter",
    "InMemoryDeliveryLogWriter",
    "PostgresDeliveryLogWriter",
]
