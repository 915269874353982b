"""
Error taxonomy for the capture and delivery pipeline.

Classification and relay failures are absorbed at their boundary and turned
into values. Persistence failures propagate: they are the only errors allowed
to abort a pipeline invocation.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class PersistenceError(PipelineError):
    """Raised when the local transaction store cannot read or write."""


class RecordNotFoundError(PersistenceError):
    """Raised when a state update targets an unknown record id."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Transaction record not found: {record_id}")


class StoreInvariantError(PipelineError):
    """Raised when an update would break a TransactionRecord invariant."""

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        self.message = message
        super().__init__(f"[{record_id}] {message}")


class PatternConfigError(PipelineError):
    """Raised when the provider pattern file cannot be loaded at all."""


class TransportError(PipelineError):
    """Raised when the backend cannot be reached (network error or timeout)."""
