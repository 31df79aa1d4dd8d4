"""DynamoDB-backed event store."""
import logging
import uuid
from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import EventNotFoundError, ImportConflictError, StoreError
from processor.models import (
    ActiveEventRef,
    EventStatus,
    RunCounts,
    RunStatus,
    ScrapeRunLog,
    StoredEvent,
)

logger = logging.getLogger(__name__)

STORE_ERRORS = (ClientError, BotoCoreError)


def _is_conditional_failure(error: Exception) -> bool:
    return (
        isinstance(error, ClientError) and
        error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'
    )


def _to_attribute(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class DynamoDBEventStore:
    """
    Event store backed by two DynamoDB tables.

    The events table is keyed by event_id with global secondary indexes on
    original_event_url and source_url. The scrape logs table is keyed by
    log_id and also holds per-source advisory lock items.
    """

    ORIGINAL_URL_INDEX = 'original-url-index'
    SOURCE_URL_INDEX = 'source-url-index'
    LOCK_PREFIX = 'lock#'

    def __init__(
        self,
        events_table_name: str,
        logs_table_name: str,
        region_name: Optional[str] = None,
        dynamodb=None
    ):
        """
        Initialize DynamoDB resources and table references.

        Args:
            events_table_name: Name of the events table
            logs_table_name: Name of the scrape logs table
            region_name: AWS region (default: boto3 resolution chain)
            dynamodb: Existing boto3 DynamoDB resource to reuse
        """
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=region_name)
        self.events_table = self.dynamodb.Table(events_table_name)
        self.logs_table = self.dynamodb.Table(logs_table_name)
        logger.info(
            f"Initialized DynamoDBEventStore for tables: "
            f"{events_table_name}, {logs_table_name}"
        )

    # Events

    def find_by_original_url(self, url: str) -> Optional[StoredEvent]:
        """
        Look up an event by its identity URL.

        Args:
            url: Exact original_event_url

        Returns:
            StoredEvent or None if no event has that URL
        """
        try:
            response = self.events_table.query(
                IndexName=self.ORIGINAL_URL_INDEX,
                KeyConditionExpression=Key('original_event_url').eq(url)
            )
        except STORE_ERRORS as e:
            raise StoreError('find_by_original_url', e)

        items = response.get('Items', [])
        if not items:
            return None
        if len(items) > 1:
            logger.warning(f"Found {len(items)} events sharing URL {url}, using first")
        return self._item_to_event(items[0])

    def get_by_id(self, event_id: str) -> Optional[StoredEvent]:
        try:
            response = self.events_table.get_item(Key={'event_id': event_id})
        except STORE_ERRORS as e:
            raise StoreError('get_by_id', e)

        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def insert(self, event: StoredEvent) -> StoredEvent:
        try:
            self.events_table.put_item(
                Item=self._event_to_item(event),
                ConditionExpression=Attr('event_id').not_exists()
            )
        except STORE_ERRORS as e:
            raise StoreError('insert', e)
        return event

    def update_by_id(self, event_id: str, fields: Dict[str, Any]) -> StoredEvent:
        """
        Overwrite fields of an existing event.

        Fields set to None are removed from the item so a full replace never
        leaves stale optional values behind.

        Args:
            event_id: Identity of the event to update
            fields: Attribute name to new value

        Returns:
            The event as stored after the update
        """
        set_clauses = []
        remove_clauses = []
        names = {}
        values = {}

        for i, (name, value) in enumerate(fields.items()):
            placeholder = f"#f{i}"
            names[placeholder] = name
            if value is None:
                remove_clauses.append(placeholder)
            else:
                values[f":val{i}"] = _to_attribute(value)
                set_clauses.append(f"{placeholder} = :val{i}")

        expression = ''
        if set_clauses:
            expression += 'SET ' + ', '.join(set_clauses)
        if remove_clauses:
            expression += ' REMOVE ' + ', '.join(remove_clauses)

        kwargs = {
            'Key': {'event_id': event_id},
            'UpdateExpression': expression.strip(),
            'ConditionExpression': Attr('event_id').exists(),
            'ExpressionAttributeNames': names,
            'ReturnValues': 'ALL_NEW'
        }
        if values:
            kwargs['ExpressionAttributeValues'] = values

        try:
            response = self.events_table.update_item(**kwargs)
        except STORE_ERRORS as e:
            raise StoreError('update_by_id', e)

        return self._item_to_event(response['Attributes'])

    def list_active_ids_by_source_url(self, source_url: str) -> List[ActiveEventRef]:
        """
        List events of one source that are not inactive.

        Args:
            source_url: Listing URL identifying the source

        Returns:
            ActiveEventRef for each matching event
        """
        query_kwargs = {
            'IndexName': self.SOURCE_URL_INDEX,
            'KeyConditionExpression': Key('source_url').eq(source_url),
            'FilterExpression': Attr('status').ne(EventStatus.INACTIVE.value)
        }

        try:
            response = self.events_table.query(**query_kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.events_table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **query_kwargs
                )
                items.extend(response.get('Items', []))
        except STORE_ERRORS as e:
            raise StoreError('list_active_ids_by_source_url', e)

        return [
            ActiveEventRef(
                event_id=item['event_id'],
                original_event_url=item['original_event_url'],
                status=EventStatus(item['status'])
            )
            for item in items
        ]

    def bulk_set_inactive(self, event_ids: List[str], updated_at: str) -> int:
        """
        Transition events to inactive.

        Each item is updated individually; a failure is logged and the
        remaining items are still processed.

        Args:
            event_ids: Identities to retire
            updated_at: Timestamp recorded on every retired event

        Returns:
            Count of successfully retired events
        """
        if not event_ids:
            return 0

        logger.info(f"Marking {len(event_ids)} events inactive")
        success_count = 0

        for event_id in event_ids:
            try:
                self.events_table.update_item(
                    Key={'event_id': event_id},
                    UpdateExpression='SET #status = :inactive, updated_at = :updated_at',
                    ExpressionAttributeNames={'#status': 'status'},
                    ExpressionAttributeValues={
                        ':inactive': EventStatus.INACTIVE.value,
                        ':updated_at': updated_at
                    },
                    ConditionExpression=Attr('event_id').exists()
                )
                success_count += 1
            except STORE_ERRORS as e:
                logger.error(f"Error marking event {event_id} inactive: {e}")
                continue

        return success_count

    def count_events(self) -> int:
        try:
            response = self.events_table.scan(Select='COUNT')
            count = response.get('Count', 0)

            while 'LastEvaluatedKey' in response:
                response = self.events_table.scan(
                    Select='COUNT',
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                count += response.get('Count', 0)
        except STORE_ERRORS as e:
            raise StoreError('count_events', e)

        return count

    def mark_imported(
        self,
        event_id: str,
        imported_by: str,
        import_notes: Optional[str],
        imported_at: str
    ) -> StoredEvent:
        """
        Set the sticky imported status and its metadata.

        Raises:
            EventNotFoundError: If the event does not exist
            ImportConflictError: If the event was already imported
        """
        values = {
            ':imported': EventStatus.IMPORTED.value,
            ':imported_at': imported_at,
            ':imported_by': imported_by
        }
        expression = (
            'SET #status = :imported, imported_at = :imported_at, '
            'imported_by = :imported_by, updated_at = :imported_at'
        )
        if import_notes:
            values[':notes'] = import_notes
            expression += ', import_notes = :notes'

        try:
            response = self.events_table.update_item(
                Key={'event_id': event_id},
                UpdateExpression=expression,
                ConditionExpression=(
                    Attr('event_id').exists() &
                    Attr('status').ne(EventStatus.IMPORTED.value)
                ),
                ExpressionAttributeNames={'#status': 'status'},
                ExpressionAttributeValues=values,
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                if self.get_by_id(event_id) is None:
                    raise EventNotFoundError(event_id)
                raise ImportConflictError(event_id)
            raise StoreError('mark_imported', e)
        except BotoCoreError as e:
            raise StoreError('mark_imported', e)

        logger.info(f"Event {event_id} imported by {imported_by}")
        return self._item_to_event(response['Attributes'])

    # Run logs

    def create_run_log(self, source_name: str, started_at: str) -> ScrapeRunLog:
        log = ScrapeRunLog(
            log_id=str(uuid.uuid4()),
            source_name=source_name,
            started_at=started_at
        )
        try:
            self.logs_table.put_item(Item=self._run_log_to_item(log))
        except STORE_ERRORS as e:
            raise StoreError('create_run_log', e)
        return log

    def finalize_run_log(
        self,
        log_id: str,
        status: RunStatus,
        counts: RunCounts,
        finished_at: str,
        error_message: Optional[str] = None
    ) -> None:
        """
        Move a running log to its terminal state.

        The update only applies while the log is still running, so a log can
        never be finalized twice.

        Raises:
            StoreError: If the log is not running or the write fails
        """
        expression = (
            'SET #status = :status, finished_at = :finished_at, '
            'events_found = :found, events_new = :new, '
            'events_updated = :updated, events_inactive = :inactive'
        )
        values = {
            ':status': status.value,
            ':running': RunStatus.RUNNING.value,
            ':finished_at': finished_at,
            ':found': counts.found,
            ':new': counts.new,
            ':updated': counts.updated,
            ':inactive': counts.inactive
        }
        if error_message:
            expression += ', error_message = :error_message'
            values[':error_message'] = error_message

        try:
            self.logs_table.update_item(
                Key={'log_id': log_id},
                UpdateExpression=expression,
                ConditionExpression='#status = :running',
                ExpressionAttributeNames={'#status': 'status'},
                ExpressionAttributeValues=values
            )
        except STORE_ERRORS as e:
            raise StoreError('finalize_run_log', e)

    def list_recent_run_logs(self, limit: int = 20) -> List[ScrapeRunLog]:
        """
        Retrieve the most recent run logs, newest first.

        Args:
            limit: Maximum number of logs to return

        Returns:
            List of ScrapeRunLog objects
        """
        scan_kwargs = {'FilterExpression': Attr('started_at').exists()}

        try:
            response = self.logs_table.scan(**scan_kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.logs_table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_kwargs
                )
                items.extend(response.get('Items', []))
        except STORE_ERRORS as e:
            raise StoreError('list_recent_run_logs', e)

        logs = [self._item_to_run_log(item) for item in items]
        logs.sort(key=lambda log: log.started_at, reverse=True)
        return logs[:limit]

    # Locks

    def acquire_source_lock(
        self,
        source_name: str,
        now: float,
        ttl_seconds: int
    ) -> Optional[str]:
        """
        Take the advisory lock for a source unless an unexpired one exists.

        Args:
            source_name: Source to lock
            now: Current epoch seconds
            ttl_seconds: Lock lifetime; an expired lock can be taken over

        Returns:
            Owner token to release the lock with, or None if it is held
        """
        owner = str(uuid.uuid4())
        try:
            self.logs_table.put_item(
                Item={
                    'log_id': f"{self.LOCK_PREFIX}{source_name}",
                    'owner': owner,
                    'lock_expires_at': int(now) + ttl_seconds
                },
                ConditionExpression=(
                    Attr('log_id').not_exists() |
                    Attr('lock_expires_at').lt(int(now))
                )
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return None
            raise StoreError('acquire_source_lock', e)
        except BotoCoreError as e:
            raise StoreError('acquire_source_lock', e)
        return owner

    def release_source_lock(self, source_name: str, owner: str) -> bool:
        """
        Release a lock only if it is still held by the given owner.

        Returns:
            False if the lock expired and was taken over by another run
        """
        try:
            self.logs_table.delete_item(
                Key={'log_id': f"{self.LOCK_PREFIX}{source_name}"},
                ConditionExpression=Attr('owner').eq(owner)
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                logger.warning(f"Lock for {source_name} was lost before release")
                return False
            raise StoreError('release_source_lock', e)
        except BotoCoreError as e:
            raise StoreError('release_source_lock', e)
        return True

    # Conversion

    def _event_to_item(self, event: StoredEvent) -> dict:
        """
        Convert StoredEvent to a DynamoDB item, omitting absent optionals.
        """
        return {
            name: _to_attribute(value)
            for name, value in asdict(event).items()
            if value is not None
        }

    def _item_to_event(self, item: dict) -> StoredEvent:
        tags = item.get('tags')
        return StoredEvent(
            event_id=item['event_id'],
            title=item['title'],
            city=item.get('city', ''),
            source_name=item['source_name'],
            source_url=item['source_url'],
            original_event_url=item['original_event_url'],
            status=EventStatus(item['status']),
            content_hash=item.get('content_hash', ''),
            last_scraped_at=item['last_scraped_at'],
            created_at=item['created_at'],
            updated_at=item['updated_at'],
            date_time=item.get('date_time'),
            date_time_end=item.get('date_time_end'),
            venue_name=item.get('venue_name'),
            venue_address=item.get('venue_address'),
            description=item.get('description'),
            category=item.get('category'),
            tags=list(tags) if tags is not None else None,
            image_url=item.get('image_url'),
            imported_at=item.get('imported_at'),
            imported_by=item.get('imported_by'),
            import_notes=item.get('import_notes')
        )

    def _run_log_to_item(self, log: ScrapeRunLog) -> dict:
        return {
            name: value
            for name, value in log.to_dict().items()
            if value is not None
        }

    def _item_to_run_log(self, item: dict) -> ScrapeRunLog:
        return ScrapeRunLog(
            log_id=item['log_id'],
            source_name=item['source_name'],
            started_at=item['started_at'],
            status=RunStatus(item['status']),
            finished_at=item.get('finished_at'),
            events_found=int(item.get('events_found', 0)),
            events_new=int(item.get('events_new', 0)),
            events_updated=int(item.get('events_updated', 0)),
            events_inactive=int(item.get('events_inactive', 0)),
            error_message=item.get('error_message')
        )
