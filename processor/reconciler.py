"""Reconciler merging scraped batches into the event store."""
import logging
import uuid
from typing import Callable, Iterable, List, Optional

from processor.errors import StoreError
from processor.fingerprint import content_hash_for
from processor.models import (
    BatchResult,
    EventStatus,
    NormalizedEvent,
    Outcome,
    RecordResult,
    StoredEvent,
    utc_now,
)
from storage.gateway import EventStoreGateway

logger = logging.getLogger(__name__)


class Reconciler:
    """Decides insert, update or no-op per record and retires stale events."""

    def __init__(
        self,
        gateway: EventStoreGateway,
        clock: Callable[[], str] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4())
    ):
        """
        Initialize the reconciler.

        Args:
            gateway: Event store the reconciler reads and writes through
            clock: Returns the current time as an ISO 8601 string
            id_factory: Generates identities for newly inserted events
        """
        self.gateway = gateway
        self.clock = clock
        self.id_factory = id_factory

    @staticmethod
    def is_reconcilable(record: NormalizedEvent) -> bool:
        """A record needs a title and an identity URL to be matched."""
        return bool(record.title and record.original_event_url)

    def reconcile_one(self, record: NormalizedEvent) -> RecordResult:
        """
        Merge a single scraped record into the store.

        Store failures are logged and reported as a FAILED result so the
        rest of the batch can continue.

        Args:
            record: Normalized record from a source adapter

        Returns:
            RecordResult with outcome new, updated, unchanged, skipped or failed
        """
        url = record.original_event_url or ''

        if not self.is_reconcilable(record):
            logger.debug(f"Skipping record without title or URL: '{url}'")
            return RecordResult(outcome=Outcome.SKIPPED, original_event_url=url)

        content_hash = content_hash_for(record)
        now = self.clock()

        try:
            existing = self.gateway.find_by_original_url(url)

            if existing is None:
                self.gateway.insert(StoredEvent(
                    event_id=self.id_factory(),
                    status=EventStatus.NEW,
                    content_hash=content_hash,
                    last_scraped_at=now,
                    created_at=now,
                    updated_at=now,
                    **record.normalized_fields()
                ))
                return RecordResult(outcome=Outcome.NEW, original_event_url=url)

            is_changed = existing.content_hash != content_hash

            if existing.status == EventStatus.IMPORTED:
                new_status = EventStatus.IMPORTED
            elif is_changed:
                new_status = EventStatus.UPDATED
            else:
                new_status = existing.status

            fields = record.normalized_fields()
            fields.update(
                content_hash=content_hash,
                status=new_status,
                last_scraped_at=now,
                updated_at=now
            )
            self.gateway.update_by_id(existing.event_id, fields)

        except StoreError as e:
            logger.error(
                f"Failed to reconcile event '{url}': {e}",
                extra={'source_url': record.source_url}
            )
            return RecordResult(
                outcome=Outcome.FAILED,
                original_event_url=url,
                error=str(e)
            )

        outcome = Outcome.UPDATED if is_changed else Outcome.UNCHANGED
        return RecordResult(outcome=outcome, original_event_url=url)

    def retire_stale(self, source_url: str, active_urls: Iterable[str]) -> int:
        """
        Mark events of a source that were not seen in this run as inactive.

        An empty active set retires nothing, so a failed or degenerate scrape
        can never wipe out a source.

        Args:
            source_url: Listing URL identifying the source
            active_urls: Identity URLs observed in the current run

        Returns:
            Number of events transitioned to inactive
        """
        active = set(active_urls)
        if not active:
            logger.info(f"No active URLs for {source_url}, skipping retirement")
            return 0

        candidates = self.gateway.list_active_ids_by_source_url(source_url)
        stale_ids = [
            ref.event_id for ref in candidates
            if ref.original_event_url not in active
        ]

        if not stale_ids:
            return 0

        retired = self.gateway.bulk_set_inactive(stale_ids, self.clock())
        logger.info(f"Retired {retired} of {len(stale_ids)} stale events for {source_url}")
        return retired

    def reconcile_batch(
        self,
        records: List[NormalizedEvent],
        batch: Optional[BatchResult] = None
    ) -> BatchResult:
        """
        Reconcile one source's batch, then retire what it no longer lists.

        Args:
            records: All records returned by one adapter call
            batch: Result to accumulate into, so a caller still holds the
                counts reached if retirement raises

        Returns:
            BatchResult with counts and per-record results
        """
        batch = batch if batch is not None else BatchResult()
        batch.found = len(records)
        active_urls: List[str] = []

        for record in records:
            result = self.reconcile_one(record)
            batch.record(result)
            if result.outcome != Outcome.SKIPPED:
                active_urls.append(result.original_event_url)

        if records:
            batch.inactive = self.retire_stale(records[0].source_url, active_urls)

        logger.info(
            f"Reconciled batch: {batch.found} found, {batch.new} new, "
            f"{batch.updated} updated, {batch.unchanged} unchanged, "
            f"{batch.skipped} skipped, {batch.failed} failed, "
            f"{batch.inactive} inactive"
        )
        return batch
