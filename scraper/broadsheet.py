"""Scraper for Broadsheet Sydney's event guide."""
from typing import Optional

from scraper.base import HtmlEventScraper
from processor.models import NormalizedEvent


class BroadsheetScraper(HtmlEventScraper):
    """Scraper for Broadsheet Sydney event listings."""

    SOURCE_NAME = 'Broadsheet Sydney'
    SOURCE_URL = 'https://www.broadsheet.com.au/sydney/events'
    SITE_ORIGIN = 'https://www.broadsheet.com.au'

    CARD_SELECTOR = "article, [class*='event-card'], [class*='listing']"
    TITLE_SELECTOR = "h2, h3, [class*='title']"
    DATE_SELECTOR = "time, [class*='date']"
    VENUE_SELECTOR = "[class*='venue'], [class*='address']"
    DESCRIPTION_SELECTOR = "p, [class*='excerpt']"
    CATEGORY_SELECTOR = "[class*='category'], [class*='kicker']"

    MIN_TITLE_LENGTH = 3
    DEFAULT_CATEGORY = 'Culture'

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
        category = category or self.DEFAULT_CATEGORY
        event = super()._build_card_event(
            title, url, date_text, venue, description, image_url, category
        )
        event.tags = [category, 'Broadsheet']
        return event
