"""Scraper for Eventbrite's Sydney event listings."""
from typing import Optional

from scraper.base import HtmlEventScraper
from processor.models import NormalizedEvent


class EventbriteScraper(HtmlEventScraper):
    """Scraper for Eventbrite discovery pages."""

    SOURCE_NAME = 'Eventbrite'
    SOURCE_URL = 'https://www.eventbrite.com.au/d/australia--sydney/events/'
    SITE_ORIGIN = 'https://www.eventbrite.com.au'

    HEADERS = {
        **HtmlEventScraper.HEADERS,
        'Accept': (
            'text/html,application/xhtml+xml,application/xml;q=0.9,'
            'image/avif,image/webp,*/*;q=0.8'
        ),
        'Accept-Language': 'en-US,en;q=0.5'
    }

    CARD_SELECTOR = (
        "[data-testid='event-card'], .discover-search-desktop-card, "
        ".eds-event-card-content"
    )
    TITLE_SELECTOR = "h2, h3, [data-testid='event-card-title']"
    DATE_SELECTOR = "time, [data-testid='event-card-date'], .eds-text-bs"
    VENUE_SELECTOR = "[data-testid='event-card-venue'], .card-text--where"
    DESCRIPTION_SELECTOR = 'p, .eds-text-bs--fixed'
    CATEGORY_SELECTOR = "[data-testid='event-card-category']"

    def _build_card_event(
        self,
        title: str,
        url: str,
        date_text: Optional[str],
        venue: Optional[str],
        description: Optional[str],
        image_url: Optional[str],
        category: Optional[str]
    ) -> NormalizedEvent:
        event = super()._build_card_event(
            title, url, date_text, venue, description, image_url, category
        )
        # Venue text reads "Name, Street, Suburb"
        if venue:
            event.venue_name = venue.split(',')[0].strip()
        return event
