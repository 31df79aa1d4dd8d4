"""Unit tests for the DynamoDB event store."""
import pytest

from conftest import EVENTS_TABLE, LOGS_TABLE
from processor.errors import EventNotFoundError, ImportConflictError, StoreError
from processor.models import EventStatus, RunCounts, RunStatus, StoredEvent
from processor.reconciler import Reconciler
from storage.dynamodb_gateway import DynamoDBEventStore


@pytest.fixture
def event_store(dynamodb_tables):
    """Create DynamoDBEventStore instance with mock tables."""
    return DynamoDBEventStore(EVENTS_TABLE, LOGS_TABLE, dynamodb=dynamodb_tables)


def make_stored_event(event_id='evt-1', url='https://x/1', source_url='https://x/events', **kwargs):
    fields = {
        'event_id': event_id,
        'title': 'Jazz Night',
        'city': 'Sydney',
        'source_name': 'Test Source',
        'source_url': source_url,
        'original_event_url': url,
        'status': EventStatus.NEW,
        'content_hash': 'abc123',
        'last_scraped_at': '2024-03-01T10:00:00+00:00',
        'created_at': '2024-03-01T10:00:00+00:00',
        'updated_at': '2024-03-01T10:00:00+00:00',
        'venue_name': 'The Basement',
        'tags': ['Music', 'Jazz'],
    }
    fields.update(kwargs)
    return StoredEvent(**fields)


def test_find_by_original_url_missing(event_store):
    """Test lookup of an unknown URL returns None."""
    assert event_store.find_by_original_url('https://x/none') is None


def test_insert_and_find(event_store):
    """Test an inserted event can be found by its exact URL."""
    event_store.insert(make_stored_event())

    found = event_store.find_by_original_url('https://x/1')

    assert found.event_id == 'evt-1'
    assert found.status == EventStatus.NEW
    assert found.tags == ['Music', 'Jazz']
    assert found.description is None
    assert event_store.find_by_original_url('https://x/1/') is None


def test_insert_duplicate_id_raises(event_store):
    """Test inserting an existing event_id is rejected."""
    event_store.insert(make_stored_event())

    with pytest.raises(StoreError):
        event_store.insert(make_stored_event(url='https://x/2'))


def test_update_by_id_sets_and_removes(event_store):
    """Test update overwrites given fields and removes None ones."""
    event_store.insert(make_stored_event(image_url='https://img/1.jpg'))

    updated = event_store.update_by_id('evt-1', {
        'title': 'Jazz Night (Rescheduled)',
        'status': EventStatus.UPDATED,
        'image_url': None,
        'updated_at': '2024-03-02T10:00:00+00:00'
    })

    assert updated.title == 'Jazz Night (Rescheduled)'
    assert updated.status == EventStatus.UPDATED
    assert updated.image_url is None
    assert event_store.get_by_id('evt-1').updated_at == '2024-03-02T10:00:00+00:00'


def test_update_missing_event_raises(event_store):
    """Test updating a non-existent event does not create it."""
    with pytest.raises(StoreError):
        event_store.update_by_id('missing', {'title': 'Ghost'})

    assert event_store.get_by_id('missing') is None


def test_list_active_ids_by_source_url(event_store):
    """Test only non-inactive events of the given source are listed."""
    event_store.insert(make_stored_event('evt-1', 'https://x/1'))
    event_store.insert(make_stored_event('evt-2', 'https://x/2', status=EventStatus.INACTIVE))
    event_store.insert(make_stored_event('evt-3', 'https://x/3', status=EventStatus.IMPORTED))
    event_store.insert(make_stored_event('evt-4', 'https://y/1', source_url='https://y/events'))

    refs = event_store.list_active_ids_by_source_url('https://x/events')

    assert sorted(ref.event_id for ref in refs) == ['evt-1', 'evt-3']


def test_bulk_set_inactive(event_store):
    """Test bulk retirement updates status and timestamp."""
    for i in range(3):
        event_store.insert(make_stored_event(f'evt-{i}', f'https://x/{i}'))

    count = event_store.bulk_set_inactive(['evt-0', 'evt-2'], '2024-03-05T00:00:00+00:00')

    assert count == 2
    assert event_store.get_by_id('evt-0').status == EventStatus.INACTIVE
    assert event_store.get_by_id('evt-0').updated_at == '2024-03-05T00:00:00+00:00'
    assert event_store.get_by_id('evt-1').status == EventStatus.NEW


def test_bulk_set_inactive_skips_missing(event_store):
    """Test a missing id is logged and does not stop the rest."""
    event_store.insert(make_stored_event())

    count = event_store.bulk_set_inactive(['missing', 'evt-1'], 'now')

    assert count == 1
    assert event_store.get_by_id('missing') is None


def test_count_events(event_store):
    """Test counting events across the table."""
    assert event_store.count_events() == 0

    event_store.insert(make_stored_event('evt-1', 'https://x/1'))
    event_store.insert(make_stored_event('evt-2', 'https://x/2'))

    assert event_store.count_events() == 2


def test_mark_imported(event_store):
    """Test import sets sticky status and metadata once."""
    event_store.insert(make_stored_event())

    imported = event_store.mark_imported(
        'evt-1', 'editor@example.com', 'Featured', '2024-03-03T09:00:00+00:00'
    )

    assert imported.status == EventStatus.IMPORTED
    assert imported.imported_by == 'editor@example.com'
    assert imported.import_notes == 'Featured'
    assert imported.imported_at == '2024-03-03T09:00:00+00:00'

    with pytest.raises(ImportConflictError):
        event_store.mark_imported('evt-1', 'someone@example.com', None, 'later')


def test_mark_imported_unknown_event(event_store):
    """Test importing an unknown event raises EventNotFoundError."""
    with pytest.raises(EventNotFoundError):
        event_store.mark_imported('missing', 'editor', None, 'now')


def test_run_log_lifecycle(event_store):
    """Test a run log is created running and finalized once."""
    log = event_store.create_run_log('Eventbrite', '2024-03-01T10:00:00+00:00')

    event_store.finalize_run_log(
        log.log_id,
        status=RunStatus.SUCCESS,
        counts=RunCounts(found=5, new=2, updated=1, inactive=1),
        finished_at='2024-03-01T10:01:00+00:00'
    )

    logs = event_store.list_recent_run_logs()
    assert len(logs) == 1
    assert logs[0].status == RunStatus.SUCCESS
    assert logs[0].events_found == 5
    assert logs[0].events_new == 2
    assert logs[0].events_updated == 1
    assert logs[0].events_inactive == 1
    assert logs[0].finished_at == '2024-03-01T10:01:00+00:00'
    assert logs[0].error_message is None


def test_run_log_cannot_be_finalized_twice(event_store):
    """Test a finalized log rejects a second terminal transition."""
    log = event_store.create_run_log('Eventbrite', '2024-03-01T10:00:00+00:00')
    event_store.finalize_run_log(
        log.log_id, RunStatus.ERROR, RunCounts(), 'finished', error_message='timeout'
    )

    with pytest.raises(StoreError):
        event_store.finalize_run_log(log.log_id, RunStatus.SUCCESS, RunCounts(), 'again')

    logs = event_store.list_recent_run_logs()
    assert logs[0].status == RunStatus.ERROR
    assert logs[0].error_message == 'timeout'


def test_recent_logs_sorted_and_limited(event_store):
    """Test recent logs come back newest first and exclude lock items."""
    for i in range(5):
        event_store.create_run_log(f'Source {i}', f'2024-03-0{i + 1}T10:00:00+00:00')
    event_store.acquire_source_lock('Source 0', 1000, 60)

    logs = event_store.list_recent_run_logs(limit=3)

    assert [log.source_name for log in logs] == ['Source 4', 'Source 3', 'Source 2']


def test_source_lock(event_store):
    """Test the advisory lock excludes others until released or expired."""
    owner = event_store.acquire_source_lock('Eventbrite', 1000, 60)
    assert owner is not None
    assert event_store.acquire_source_lock('Eventbrite', 1030, 60) is None
    assert event_store.acquire_source_lock('Timeout Sydney', 1030, 60) is not None

    assert event_store.release_source_lock('Eventbrite', owner) is True
    assert event_store.acquire_source_lock('Eventbrite', 1031, 60) is not None


def test_expired_lock_takeover_survives_stale_release(event_store):
    """Test a run whose lock was taken over cannot release the new holder's lock."""
    run_a = event_store.acquire_source_lock('Eventbrite', 0, 10)
    run_b = event_store.acquire_source_lock('Eventbrite', 20, 10)
    assert run_b is not None

    assert event_store.release_source_lock('Eventbrite', run_a) is False
    assert event_store.acquire_source_lock('Eventbrite', 21, 10) is None

    assert event_store.release_source_lock('Eventbrite', run_b) is True
    assert event_store.acquire_source_lock('Eventbrite', 22, 10) is not None


def test_reconciler_against_dynamodb(event_store, event_factory):
    """Test the two-run scenario end to end against DynamoDB."""
    reconciler = Reconciler(event_store)

    first = reconciler.reconcile_batch([
        event_factory('https://x/1', title='Jazz Night'),
        event_factory('https://x/2', title='Art Fair'),
    ])
    second = reconciler.reconcile_batch([
        event_factory('https://x/1', title='Jazz Night (Rescheduled)'),
    ])

    assert (first.new, first.updated, first.inactive) == (2, 0, 0)
    assert (second.new, second.updated, second.inactive) == (0, 1, 1)
    assert event_store.find_by_original_url('https://x/1').status == EventStatus.UPDATED
    assert event_store.find_by_original_url('https://x/2').status == EventStatus.INACTIVE
