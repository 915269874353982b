"""
Enumerations shared by the pipeline models.
"""

from enum import Enum


class Direction(str, Enum):
    """Money movement described by a notification."""

    RECEIVED = "RECEIVED"
    SENT = "SENT"
    CASH_OUT = "CASH_OUT"
    AIRTIME = "AIRTIME"
    DEPOSIT = "DEPOSIT"
    UNKNOWN = "UNKNOWN"


class ParserKind(str, Enum):
    """Which parser produced a ParsedTransaction."""

    PATTERN = "pattern"
    HEURISTIC = "heuristic"


class DeliveryState(str, Enum):
    """
    Sync state machine for a TransactionRecord.

    PENDING -> SYNCING -> SYNCED | FAILED, with FAILED re-armed to PENDING
    only for transient causes under the retry ceiling.
    """

    PENDING = "PENDING"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


class SyncOutcome(str, Enum):
    """Tri-state result of one sync invocation, mapped onto the scheduler."""

    SUCCESS = "success"
    RETRY = "retry"
    FAILURE = "failure"
