"""Interface between the reconciliation engine and the event store."""
from typing import Any, Dict, List, Optional, Protocol

from processor.models import (
    ActiveEventRef,
    RunCounts,
    RunStatus,
    ScrapeRunLog,
    StoredEvent,
)


class EventStoreGateway(Protocol):
    """
    Query and mutate operations the reconciler and orchestrator rely on.

    Implementations raise processor.errors.StoreError for backend failures.
    """

    def find_by_original_url(self, url: str) -> Optional[StoredEvent]:
        """Exact-match point lookup on the identity key."""
        ...

    def get_by_id(self, event_id: str) -> Optional[StoredEvent]:
        ...

    def insert(self, event: StoredEvent) -> StoredEvent:
        ...

    def update_by_id(self, event_id: str, fields: Dict[str, Any]) -> StoredEvent:
        """Overwrite the given fields; a None value removes the attribute."""
        ...

    def list_active_ids_by_source_url(self, source_url: str) -> List[ActiveEventRef]:
        """All events of a source whose status is not inactive."""
        ...

    def bulk_set_inactive(self, event_ids: List[str], updated_at: str) -> int:
        """Retire the given events and return how many were updated."""
        ...

    def count_events(self) -> int:
        ...

    def mark_imported(
        self,
        event_id: str,
        imported_by: str,
        import_notes: Optional[str],
        imported_at: str
    ) -> StoredEvent:
        ...

    def create_run_log(self, source_name: str, started_at: str) -> ScrapeRunLog:
        ...

    def finalize_run_log(
        self,
        log_id: str,
        status: RunStatus,
        counts: RunCounts,
        finished_at: str,
        error_message: Optional[str] = None
    ) -> None:
        ...

    def list_recent_run_logs(self, limit: int = 20) -> List[ScrapeRunLog]:
        ...

    def acquire_source_lock(
        self,
        source_name: str,
        now: float,
        ttl_seconds: int
    ) -> Optional[str]:
        """Return an owner token, or None while another run holds the lock."""
        ...

    def release_source_lock(self, source_name: str, owner: str) -> bool:
        """Release the lock if owner still holds it; False if it was lost."""
        ...
