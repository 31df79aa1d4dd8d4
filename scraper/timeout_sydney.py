"""Scraper for Time Out Sydney's event listings."""
from typing import Optional

from scraper.base import HtmlEventScraper
from processor.models import NormalizedEvent


class TimeoutSydneyScraper(HtmlEventScraper):
    """Scraper for Time Out Sydney article cards."""

    SOURCE_NAME = 'Timeout Sydney'
    SOURCE_URL = 'https://www.timeout.com/sydney/events'
    SITE_ORIGIN = 'https://www.timeout.com'

    CARD_SELECTOR = "article, .card, [class*='articleCard'], [class*='tile']"
    TITLE_SELECTOR = "h2, h3, h4, [class*='title'], [class*='heading']"
    DATE_SELECTOR = "time, [class*='date'], [class*='when']"
    VENUE_SELECTOR = "[class*='venue'], [class*='location'], [class*='where']"
    DESCRIPTION_SELECTOR = "p, [class*='desc'], [class*='summary']"
    CATEGORY_SELECTOR = "[class*='category'], [class*='tag'], [class*='label']"
    IMAGE_ATTRIBUTES = ('src', 'data-src', 'data-lazy-src')

    MIN_TITLE_LENGTH = 3
    DEFAULT_CATEGORY = 'Events'

    def _is_listing_url(self, url: str) -> bool:
        # Cards also link to other listing and section pages
        return 'timeout.com/sydney/events' in url

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
        return super()._build_card_event(
            title, url, date_text, venue, description, image_url,
            category or self.DEFAULT_CATEGORY
        )

    def _build_json_ld_event(self, item: dict) -> Optional[NormalizedEvent]:
        event = super()._build_json_ld_event(item)
        if event:
            event.category = self.DEFAULT_CATEGORY
            event.tags = [self.DEFAULT_CATEGORY]
        return event
