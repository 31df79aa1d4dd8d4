"""Exceptions raised across scraping, reconciliation and storage."""
from typing import Optional


class ReconciliationError(Exception):
    """Base class for all errors raised by this service."""


class AdapterError(ReconciliationError):
    """
    A source adapter failed for its whole batch.

    Raised for network or page-level parse failures. Individual malformed
    items are skipped by the adapter and never raise.
    """

    def __init__(
        self,
        source_name: str,
        message: str,
        original_error: Optional[Exception] = None
    ):
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name
        self.original_error = original_error


class StoreError(ReconciliationError):
    """A read or write against the event store failed."""

    def __init__(self, operation: str, original_error: Exception):
        super().__init__(f"Store operation '{operation}' failed: {original_error}")
        self.operation = operation
        self.original_error = original_error


class UnknownSourceError(ReconciliationError):
    """No adapter is registered under the given source name."""

    def __init__(self, source_name: str):
        super().__init__(f"Unknown source: {source_name}")
        self.source_name = source_name


class EventNotFoundError(ReconciliationError):
    """No stored event exists with the given id."""

    def __init__(self, event_id: str):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class ImportConflictError(ReconciliationError):
    """The event has already been imported."""

    def __init__(self, event_id: str):
        super().__init__(f"Event already imported: {event_id}")
        self.event_id = event_id
