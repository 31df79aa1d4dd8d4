"""Scraper for the City of Sydney council event listings."""
from typing import Optional

from scraper.base import HtmlEventScraper
from processor.models import NormalizedEvent


class CityOfSydneyScraper(HtmlEventScraper):
    """Scraper for community events published by the City of Sydney."""

    SOURCE_NAME = 'City of Sydney'
    SOURCE_URL = 'https://www.cityofsydney.nsw.gov.au/events'
    SITE_ORIGIN = 'https://www.cityofsydney.nsw.gov.au'

    CARD_SELECTOR = (
        "article, .event-card, [class*='event-item'], .listing-item, [class*='card']"
    )
    DATE_SELECTOR = "time, [class*='date']"

    MIN_TITLE_LENGTH = 3
    CATEGORY = 'Community'

    def _is_listing_url(self, url: str) -> bool:
        return url.rstrip('/').endswith('/events')

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
            title, url, date_text, venue, description, image_url, self.CATEGORY
        )
        event.venue_address = f"{venue}, Sydney NSW" if venue else None
        event.tags = [self.CATEGORY, 'Council']
        return event

    def _build_json_ld_event(self, item: dict) -> Optional[NormalizedEvent]:
        event = super()._build_json_ld_event(item)
        if event:
            event.category = self.CATEGORY
            event.tags = [self.CATEGORY]
        return event
