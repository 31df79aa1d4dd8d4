"""Run orchestrator sequencing scrape and reconciliation across sources."""
import logging
import time
from typing import Callable, List, Mapping, Optional

from processor.errors import StoreError, UnknownSourceError
from processor.models import (
    BatchResult,
    RunCounts,
    RunStatus,
    ScrapeRunLog,
    SourceRunResult,
    utc_now,
)
from processor.reconciler import Reconciler
from scraper.base import Adapter
from scraper.registry import SEED_SOURCE, Source
from storage.gateway import EventStoreGateway

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Runs sources one at a time and records a run log for each.

    Source-level failures are captured in the run log and in the returned
    summary; they never propagate. Only failures of the orchestration itself,
    such as being unable to create a run log, are raised.
    """

    def __init__(
        self,
        gateway: EventStoreGateway,
        adapters: Mapping[Source, Adapter],
        reconciler: Optional[Reconciler] = None,
        clock: Callable[[], str] = utc_now,
        lock_ttl_seconds: Optional[int] = None,
        time_source: Callable[[], float] = time.time
    ):
        """
        Initialize the orchestrator.

        Args:
            gateway: Event store holding events and run logs
            adapters: Adapter for every Source member
            reconciler: Reconciler to use (default: one built on gateway)
            clock: Returns the current time as an ISO 8601 string
            lock_ttl_seconds: Enables per-source advisory locking when set
            time_source: Epoch seconds used for lock expiry

        Raises:
            ValueError: If a source has no adapter
        """
        missing = [source.value for source in Source if source not in adapters]
        if missing:
            raise ValueError(f"No adapter configured for sources: {', '.join(missing)}")

        self.gateway = gateway
        self.adapters = dict(adapters)
        self.reconciler = reconciler or Reconciler(gateway, clock=clock)
        self.clock = clock
        self.lock_ttl_seconds = lock_ttl_seconds
        self.time_source = time_source

    def run_all(self) -> List[SourceRunResult]:
        """
        Run the seed source first, then every other source in order.

        Returns:
            One summary per source, including failed ones
        """
        order = [SEED_SOURCE] + [source for source in Source if source != SEED_SOURCE]
        results = [self._run_source(source) for source in order]

        failed = [r.source for r in results if r.error]
        logger.info(
            f"Completed run of {len(results)} sources",
            extra={'failed_sources': failed}
        )
        return results

    def run_single(self, source_name: str) -> SourceRunResult:
        """
        Run exactly one source by name.

        Unknown names produce an error result without creating a run log.
        """
        try:
            source = Source.from_name(source_name)
        except UnknownSourceError:
            logger.warning(f"Requested unknown source: {source_name}")
            return SourceRunResult(source=source_name, error='Unknown source')

        return self._run_source(source)

    def recent_logs(self, limit: int = 20) -> List[ScrapeRunLog]:
        return self.gateway.list_recent_run_logs(limit)

    def _run_source(self, source: Source) -> SourceRunResult:
        adapter = self.adapters[source]

        if not self.lock_ttl_seconds:
            return self.run_one(source.value, adapter)

        owner = self.gateway.acquire_source_lock(
            source.value, self.time_source(), self.lock_ttl_seconds
        )
        if owner is None:
            logger.warning(f"Skipping {source.value}: another run holds its lock")
            return SourceRunResult(
                source=source.value,
                error='Source run already in progress'
            )

        try:
            result = self.run_one(source.value, adapter)
        except Exception:
            self._release_lock(source.value, owner)
            raise

        error = self._release_lock(source.value, owner)
        if error and result.error is None:
            result.error = error
        return result

    def _release_lock(self, source_name: str, owner: str) -> Optional[str]:
        """Release a source lock, returning an error message instead of raising."""
        try:
            if not self.gateway.release_source_lock(source_name, owner):
                logger.warning(f"Lock for {source_name} expired during its run")
        except StoreError as e:
            logger.error(f"Failed to release lock for {source_name}: {e}")
            return str(e)
        return None

    def run_one(self, source_name: str, adapter: Adapter) -> SourceRunResult:
        """
        Scrape one source, reconcile its batch and finalize its run log.

        Counts reached before a failure are kept on the result and the log,
        since records reconciled before it stay committed.

        Args:
            source_name: Display name recorded on the run log
            adapter: Zero-argument callable returning the source's records

        Returns:
            SourceRunResult with counts, or with error set on failure

        Raises:
            StoreError: If the run log cannot be created
        """
        log = self.gateway.create_run_log(source_name, self.clock())
        result = SourceRunResult(source=source_name)
        batch = BatchResult()
        start_time = time.time()

        logger.info(f"Starting run for {source_name}", extra={'log_id': log.log_id})

        try:
            records = adapter()
            result.found = len(records)
            self.reconciler.reconcile_batch(records, batch)

        except Exception as e:
            self._apply_batch(result, batch)
            result.error = str(e)
            logger.error(
                f"Run for {source_name} failed: {e}",
                extra={'error_type': type(e).__name__, 'log_id': log.log_id},
                exc_info=True
            )
            self._finalize(log, RunStatus.ERROR, result)
            return result

        self._apply_batch(result, batch)
        logger.info(
            f"Run for {source_name} completed",
            extra={
                'log_id': log.log_id,
                'duration_seconds': round(time.time() - start_time, 2),
                'events_found': result.found,
                'events_new': result.new,
                'events_updated': result.updated,
                'events_inactive': result.inactive
            }
        )
        self._finalize(log, RunStatus.SUCCESS, result)
        return result

    def _finalize(self, log: ScrapeRunLog, status: RunStatus, result: SourceRunResult) -> None:
        counts = RunCounts(
            found=result.found,
            new=result.new,
            updated=result.updated,
            inactive=result.inactive
        )
        try:
            self.gateway.finalize_run_log(
                log.log_id,
                status=status,
                counts=counts,
                finished_at=self.clock(),
                error_message=result.error
            )
        except StoreError as e:
            logger.error(f"Failed to finalize run log {log.log_id}: {e}")
            if result.error is None:
                result.error = str(e)

    @staticmethod
    def _apply_batch(result: SourceRunResult, batch: BatchResult) -> None:
        result.new = batch.new
        result.updated = batch.updated
        result.inactive = batch.inactive
