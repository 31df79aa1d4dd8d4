"""AWS Lambda handler for the event catalog scrape and reconciliation service."""
import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from processor.errors import EventNotFoundError, ImportConflictError
from processor.models import utc_now
from processor.orchestrator import Orchestrator
from scraper.registry import SEED_SOURCE, build_adapters
from storage.dynamodb_gateway import DynamoDBEventStore


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None)))

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        # Fields passed through `extra=`
        for key, value in vars(record).items():
            if key not in self.RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass
class Config:
    """Runtime settings read from the environment."""
    events_table_name: str
    logs_table_name: str
    log_level: str
    timeout_seconds: int
    lock_ttl_seconds: Optional[int]
    region_name: Optional[str]


def load_config() -> Config:
    """Read configuration from environment variables."""
    lock_ttl = int(os.environ.get('SOURCE_LOCK_TTL_SECONDS', '0'))
    return Config(
        events_table_name=os.environ.get('EVENTS_TABLE_NAME', 'events'),
        logs_table_name=os.environ.get('SCRAPE_LOGS_TABLE_NAME', 'scrape-logs'),
        log_level=os.environ.get('LOG_LEVEL', 'INFO'),
        timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '15')),
        lock_ttl_seconds=lock_ttl or None,
        region_name=os.environ.get('AWS_REGION')
    )


def build_orchestrator(config: Config) -> Orchestrator:
    """Wire the event store and adapters into an orchestrator."""
    store = DynamoDBEventStore(
        events_table_name=config.events_table_name,
        logs_table_name=config.logs_table_name,
        region_name=config.region_name
    )
    return Orchestrator(
        gateway=store,
        adapters=build_adapters(timeout=config.timeout_seconds),
        lock_ttl_seconds=config.lock_ttl_seconds
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body, default=str)}


def _scrape(orchestrator: Orchestrator, event: Dict[str, Any], start_time: float) -> Dict[str, Any]:
    # EventBridge events carry their own 'source' field (aws.events)
    source = None if 'detail-type' in event else event.get('source')
    if source:
        results = [orchestrator.run_single(source)]
    else:
        results = orchestrator.run_all()

    summary = [result.to_dict() for result in results]
    logger = logging.getLogger(__name__)
    logger.info(
        "Scrape completed",
        extra={'summary': summary, 'duration_seconds': round(time.time() - start_time, 2)}
    )

    return _response(200, {
        'message': 'Scrape completed',
        'ran_at': utc_now(),
        'summary': summary,
        'duration_seconds': round(time.time() - start_time, 2)
    })


def _logs(orchestrator: Orchestrator, event: Dict[str, Any]) -> Dict[str, Any]:
    try:
        limit = int(event.get('limit', 20))
    except (TypeError, ValueError):
        limit = 0
    if limit < 1:
        return _response(400, {'error': 'limit must be a positive integer'})

    logs = orchestrator.recent_logs(limit)
    return _response(200, {'logs': [log.to_dict() for log in logs]})


def _init(orchestrator: Orchestrator) -> Dict[str, Any]:
    count = orchestrator.gateway.count_events()
    if count > 0:
        return _response(200, {'message': 'Already initialized', 'count': count})

    result = orchestrator.run_single(SEED_SOURCE.value)
    return _response(200, {'message': 'Initialized', 'result': result.to_dict()})


def _import(orchestrator: Orchestrator, event: Dict[str, Any]) -> Dict[str, Any]:
    event_id = event.get('event_id')
    imported_by = event.get('imported_by')
    if not event_id or not imported_by:
        return _response(400, {'error': 'event_id and imported_by are required'})

    try:
        stored = orchestrator.gateway.mark_imported(
            event_id=event_id,
            imported_by=imported_by,
            import_notes=event.get('import_notes') or None,
            imported_at=utc_now()
        )
    except EventNotFoundError as e:
        return _response(404, {'error': str(e)})
    except ImportConflictError as e:
        return _response(409, {'error': str(e)})

    body = asdict(stored)
    body['status'] = stored.status.value
    return _response(200, {'message': 'Event imported', 'event': body})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    EventBridge scheduled events scrape every source. Direct invocations
    select an action: scrape (optionally with a source), logs, init or import.

    Args:
        event: EventBridge event or action payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    config = load_config()

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    event = event or {}
    action = event.get('action', 'scrape')

    logger.info(
        "Lambda execution started",
        extra={
            'action': action,
            'events_table_name': config.events_table_name,
            'logs_table_name': config.logs_table_name
        }
    )

    try:
        orchestrator = build_orchestrator(config)

        if action == 'scrape':
            return _scrape(orchestrator, event, start_time)
        if action == 'logs':
            return _logs(orchestrator, event)
        if action == 'init':
            return _init(orchestrator)
        if action == 'import':
            return _import(orchestrator, event)

        logger.warning(f"Unknown action: {action}")
        return _response(400, {'error': f"Unknown action: {action}"})

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Execution failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
