"""
SyncReport model summarizing one sync invocation (ephemeral).
"""

from pydantic import BaseModel, Field

from .enums import SyncOutcome


class SyncReport(BaseModel):
    """
    Summary of one run of the sync engine.

    Attributes:
        outcome: Tri-state result for the external scheduler
        selected: Records picked up for delivery
        synced: Records acknowledged by the backend
        rearmed: Records returned to PENDING after a transient failure
        rejected: Records terminally FAILED by a 4xx response
        exhausted: Records terminally FAILED at the retry ceiling
        credited: Wallet credits applied during this run
        skipped: True when another run was already in progress
        duration_seconds: Wall time of the run
    """

    outcome: SyncOutcome
    selected: int = Field(0, ge=0)
    synced: int = Field(0, ge=0)
    rearmed: int = Field(0, ge=0)
    rejected: int = Field(0, ge=0)
    exhausted: int = Field(0, ge=0)
    credited: int = Field(0, ge=0)
    skipped: bool = False
    duration_seconds: float = 0.0
