"""
Core data models for the SMS capture and delivery pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .enums import DeliveryState, Direction, ParserKind, SyncOutcome
from .parsed_transaction import ParsedTransaction
from .provider_pattern import ProviderPattern
from .raw_message import RawMessage
from .sync_report import SyncReport
from .transaction_record import TransactionRecord
from .webhook import DeliveryLog, DeliveryResult, WebhookConfig

__all__ = [
    "DeliveryState",
    "Direction",
    "ParserKind",
    "SyncOutcome",
    "RawMessage",
    "ParsedTransaction",
    "TransactionRecord",
    "ProviderPattern",
    "WebhookConfig",
    "DeliveryLog",
    "DeliveryResult",
    "SyncReport",
]
