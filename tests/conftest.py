"""Shared fixtures for the test suite."""
import uuid
from dataclasses import replace
from typing import Dict, List, Tuple

import boto3
import pytest
from moto import mock_aws

from processor.errors import EventNotFoundError, ImportConflictError, StoreError
from processor.models import (
    ActiveEventRef,
    EventStatus,
    NormalizedEvent,
    RunStatus,
    ScrapeRunLog,
)

EVENTS_TABLE = 'test-events'
LOGS_TABLE = 'test-scrape-logs'


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Keep boto3 away from real credentials and regions."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


def create_tables(dynamodb):
    """Create the events and scrape logs tables with their indexes."""
    dynamodb.create_table(
        TableName=EVENTS_TABLE,
        KeySchema=[
            {'AttributeName': 'event_id', 'KeyType': 'HASH'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'event_id', 'AttributeType': 'S'},
            {'AttributeName': 'original_event_url', 'AttributeType': 'S'},
            {'AttributeName': 'source_url', 'AttributeType': 'S'}
        ],
        GlobalSecondaryIndexes=[
            {
                'IndexName': 'original-url-index',
                'KeySchema': [
                    {'AttributeName': 'original_event_url', 'KeyType': 'HASH'}
                ],
                'Projection': {'ProjectionType': 'ALL'}
            },
            {
                'IndexName': 'source-url-index',
                'KeySchema': [
                    {'AttributeName': 'source_url', 'KeyType': 'HASH'}
                ],
                'Projection': {'ProjectionType': 'ALL'}
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )
    dynamodb.create_table(
        TableName=LOGS_TABLE,
        KeySchema=[
            {'AttributeName': 'log_id', 'KeyType': 'HASH'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'log_id', 'AttributeType': 'S'}
        ],
        BillingMode='PAY_PER_REQUEST'
    )


@pytest.fixture
def dynamodb_tables():
    """Create mock DynamoDB tables for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        create_tables(dynamodb)
        yield dynamodb


class InMemoryEventStore:
    """Dictionary-backed event store used as a test double."""

    def __init__(self):
        self.events: Dict[str, object] = {}
        self.logs: Dict[str, ScrapeRunLog] = {}
        self.locks: Dict[str, Tuple[str, float]] = {}
        self.finalize_calls: List[str] = []
        self.fail_urls = set()
        self.fail_create_run_log = False
        self.fail_release_lock = False
        self.fail_list_active = False

    def find_by_original_url(self, url):
        if url in self.fail_urls:
            raise StoreError('find_by_original_url', RuntimeError('boom'))
        for event in self.events.values():
            if event.original_event_url == url:
                return replace(event)
        return None

    def get_by_id(self, event_id):
        event = self.events.get(event_id)
        return replace(event) if event else None

    def insert(self, event):
        self.events[event.event_id] = replace(event)
        return event

    def update_by_id(self, event_id, fields):
        updated = replace(self.events[event_id], **fields)
        self.events[event_id] = updated
        return replace(updated)

    def list_active_ids_by_source_url(self, source_url):
        if self.fail_list_active:
            raise StoreError('list_active_ids_by_source_url', RuntimeError('throttled'))
        return [
            ActiveEventRef(e.event_id, e.original_event_url, e.status)
            for e in self.events.values()
            if e.source_url == source_url and e.status != EventStatus.INACTIVE
        ]

    def bulk_set_inactive(self, event_ids, updated_at):
        for event_id in event_ids:
            self.events[event_id] = replace(
                self.events[event_id],
                status=EventStatus.INACTIVE,
                updated_at=updated_at
            )
        return len(event_ids)

    def count_events(self):
        return len(self.events)

    def mark_imported(self, event_id, imported_by, import_notes, imported_at):
        event = self.events.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        if event.status == EventStatus.IMPORTED:
            raise ImportConflictError(event_id)
        self.events[event_id] = replace(
            event,
            status=EventStatus.IMPORTED,
            imported_by=imported_by,
            import_notes=import_notes,
            imported_at=imported_at,
            updated_at=imported_at
        )
        return replace(self.events[event_id])

    def create_run_log(self, source_name, started_at):
        if self.fail_create_run_log:
            raise StoreError('create_run_log', RuntimeError('unreachable'))
        log = ScrapeRunLog(
            log_id=str(uuid.uuid4()),
            source_name=source_name,
            started_at=started_at
        )
        self.logs[log.log_id] = log
        return log

    def finalize_run_log(self, log_id, status, counts, finished_at, error_message=None):
        self.finalize_calls.append(log_id)
        log = self.logs[log_id]
        if log.status != RunStatus.RUNNING:
            raise StoreError('finalize_run_log', RuntimeError('already finalized'))
        self.logs[log_id] = replace(
            log,
            status=status,
            finished_at=finished_at,
            events_found=counts.found,
            events_new=counts.new,
            events_updated=counts.updated,
            events_inactive=counts.inactive,
            error_message=error_message
        )

    def list_recent_run_logs(self, limit=20):
        logs = sorted(self.logs.values(), key=lambda log: log.started_at, reverse=True)
        return logs[:limit]

    def acquire_source_lock(self, source_name, now, ttl_seconds):
        held = self.locks.get(source_name)
        if held is not None and held[1] >= now:
            return None
        owner = str(uuid.uuid4())
        self.locks[source_name] = (owner, now + ttl_seconds)
        return owner

    def release_source_lock(self, source_name, owner):
        if self.fail_release_lock:
            raise StoreError('release_source_lock', RuntimeError('throttled'))
        held = self.locks.get(source_name)
        if held is None or held[0] != owner:
            return False
        del self.locks[source_name]
        return True


@pytest.fixture
def store():
    return InMemoryEventStore()


class FakeClock:
    """Returns increasing ISO timestamps so ordering assertions are stable."""

    def __init__(self):
        self.ticks = 0

    def __call__(self) -> str:
        self.ticks += 1
        return f"2024-03-01T10:{self.ticks // 60:02d}:{self.ticks % 60:02d}+00:00"


@pytest.fixture
def clock():
    return FakeClock()


def make_event(
    url: str,
    title: str = 'Jazz Night',
    source_url: str = 'https://x/events',
    source_name: str = 'Test Source',
    **kwargs
) -> NormalizedEvent:
    """Build a NormalizedEvent with sensible defaults."""
    fields = {
        'title': title,
        'city': 'Sydney',
        'source_name': source_name,
        'source_url': source_url,
        'original_event_url': url,
        'venue_name': 'The Venue',
    }
    fields.update(kwargs)
    return NormalizedEvent(**fields)


@pytest.fixture
def event_factory():
    return make_event
