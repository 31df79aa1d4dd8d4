"""Content fingerprints used to detect changes between scrapes."""
import hashlib
from typing import Optional

from processor.models import NormalizedEvent


def generate_content_hash(
    title: str,
    date_time: Optional[str] = None,
    venue_name: Optional[str] = None,
    venue_address: Optional[str] = None,
    description: Optional[str] = None
) -> str:
    """
    Generate a change-detection fingerprint from an event's salient fields.

    Fields are joined with '|' in fixed order, absent values become empty
    strings, and the result is lower-cased and stripped before hashing.
    Category, tags and image are deliberately not part of the fingerprint.

    Args:
        title: Event title
        date_time: Start date/time as scraped
        venue_name: Venue name
        venue_address: Venue address
        description: Event description

    Returns:
        MD5 hex digest
    """
    composite = '|'.join([
        title or '',
        date_time or '',
        venue_name or '',
        venue_address or '',
        description or ''
    ]).lower().strip()

    return hashlib.md5(composite.encode('utf-8')).hexdigest()


def content_hash_for(event: NormalizedEvent) -> str:
    """Fingerprint a normalized event."""
    return generate_content_hash(
        title=event.title,
        date_time=event.date_time,
        venue_name=event.venue_name,
        venue_address=event.venue_address,
        description=event.description
    )
