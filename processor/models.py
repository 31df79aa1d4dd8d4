"""Data models for event reconciliation."""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


class EventStatus(str, Enum):
    """Lifecycle status of a stored event."""
    NEW = 'new'
    UPDATED = 'updated'
    INACTIVE = 'inactive'
    IMPORTED = 'imported'


class RunStatus(str, Enum):
    """Status of a single source run log."""
    RUNNING = 'running'
    SUCCESS = 'success'
    ERROR = 'error'


class Outcome(str, Enum):
    """Per-record reconciliation outcome."""
    NEW = 'new'
    UPDATED = 'updated'
    UNCHANGED = 'unchanged'
    SKIPPED = 'skipped'
    FAILED = 'failed'


# Fields an adapter produces and a re-scrape fully replaces
NORMALIZED_FIELDS = (
    'title',
    'date_time',
    'date_time_end',
    'venue_name',
    'venue_address',
    'city',
    'description',
    'category',
    'tags',
    'image_url',
    'source_name',
    'source_url',
    'original_event_url',
)


@dataclass
class NormalizedEvent:
    """Event record as produced by a source adapter."""
    title: str
    city: str
    source_name: str
    source_url: str
    original_event_url: str
    date_time: Optional[str] = None
    date_time_end: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    image_url: Optional[str] = None

    def normalized_fields(self) -> dict:
        """Return the scraped fields as a plain dict."""
        return {name: getattr(self, name) for name in NORMALIZED_FIELDS}


@dataclass
class StoredEvent:
    """Event as persisted in the catalog."""
    event_id: str
    title: str
    city: str
    source_name: str
    source_url: str
    original_event_url: str
    status: EventStatus
    content_hash: str
    last_scraped_at: str
    created_at: str
    updated_at: str
    date_time: Optional[str] = None
    date_time_end: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    image_url: Optional[str] = None
    imported_at: Optional[str] = None
    imported_by: Optional[str] = None
    import_notes: Optional[str] = None


@dataclass
class ActiveEventRef:
    """Minimal projection used when computing retirement."""
    event_id: str
    original_event_url: str
    status: EventStatus


@dataclass
class RunCounts:
    """Counters recorded on a finalized run log."""
    found: int = 0
    new: int = 0
    updated: int = 0
    inactive: int = 0


@dataclass
class ScrapeRunLog:
    """One source run, created at start and finalized exactly once."""
    log_id: str
    source_name: str
    started_at: str
    status: RunStatus = RunStatus.RUNNING
    finished_at: Optional[str] = None
    events_found: int = 0
    events_new: int = 0
    events_updated: int = 0
    events_inactive: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data['status'] = self.status.value
        return data


@dataclass
class RecordResult:
    """Result of reconciling one scraped record."""
    outcome: Outcome
    original_event_url: str
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregated result of reconciling one source batch."""
    found: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    inactive: int = 0
    results: List[RecordResult] = field(default_factory=list)

    def record(self, result: RecordResult) -> None:
        self.results.append(result)
        if result.outcome == Outcome.NEW:
            self.new += 1
        elif result.outcome == Outcome.UPDATED:
            self.updated += 1
        elif result.outcome == Outcome.UNCHANGED:
            self.unchanged += 1
        elif result.outcome == Outcome.SKIPPED:
            self.skipped += 1
        elif result.outcome == Outcome.FAILED:
            self.failed += 1


@dataclass
class SourceRunResult:
    """Caller-facing summary of one source run."""
    source: str
    found: int = 0
    new: int = 0
    updated: int = 0
    inactive: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'source': self.source,
            'found': self.found,
            'new': self.new,
            'updated': self.updated,
            'inactive': self.inactive,
            'error': self.error
        }
