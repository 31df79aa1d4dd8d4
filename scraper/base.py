"""Shared HTML scraping logic for event listing sources."""
import json
import logging
import time
from typing import Callable, Iterable, List, Optional, Set
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from processor.errors import AdapterError
from processor.models import NormalizedEvent

logger = logging.getLogger(__name__)

# A source adapter: zero-argument callable returning one batch of records.
# It skips malformed items itself and raises AdapterError for batch failures.
Adapter = Callable[[], List[NormalizedEvent]]


class HtmlEventScraper:
    """
    Base scraper for listing pages made of event cards.

    Subclasses set the source constants and CSS selectors, and may override
    _build_card_event / _build_json_ld_event to shape source-specific fields.
    Cards are parsed first; JSON-LD Event blocks on the page are then added
    for any URLs the cards did not already produce.
    """

    SOURCE_NAME = ''
    SOURCE_URL = ''
    SITE_ORIGIN = ''
    CITY = 'Sydney'

    HEADERS = {
        'User-Agent': (
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
            '(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36'
        ),
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-AU,en;q=0.9'
    }

    CARD_SELECTOR = 'article'
    TITLE_SELECTOR = 'h2, h3, h4'
    LINK_SELECTOR = 'a[href]'
    DATE_SELECTOR = 'time'
    VENUE_SELECTOR = "[class*='venue'], [class*='location']"
    DESCRIPTION_SELECTOR = 'p'
    CATEGORY_SELECTOR: Optional[str] = None
    IMAGE_ATTRIBUTES = ('src', 'data-src')

    MIN_TITLE_LENGTH = 1
    MAX_RETRIES = 3

    def __init__(
        self,
        timeout: int = 15,
        retry_delay: float = 1,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the scraper.

        Args:
            timeout: HTTP request timeout in seconds (default: 15)
            retry_delay: Base delay in seconds for exponential backoff
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.session = session or requests.Session()

    def fetch_events(self) -> List[NormalizedEvent]:
        """
        Fetch and normalize all events listed by this source.

        Returns:
            List of NormalizedEvent objects

        Raises:
            AdapterError: If the page cannot be fetched or parsed
        """
        logger.info(f"Fetching events from {self.SOURCE_NAME}")

        html_content = self._fetch_html()

        try:
            events = self._parse_events(html_content)
        except Exception as e:
            raise AdapterError(self.SOURCE_NAME, f"Failed to parse listing page: {e}", e)

        logger.info(f"Fetched {len(events)} events from {self.SOURCE_NAME}")
        return events

    __call__ = fetch_events

    def _fetch_html(self) -> str:
        """
        Fetch the listing page with retry logic.

        Returns:
            HTML content as string

        Raises:
            AdapterError: If all retry attempts fail
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                logger.info(
                    f"Fetching {self.SOURCE_URL} "
                    f"(attempt {attempt + 1}/{self.MAX_RETRIES})"
                )
                response = self.session.get(
                    self.SOURCE_URL,
                    headers=self.HEADERS,
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.MAX_RETRIES} retry attempts failed. Last error: {e}"
                    )
                    raise AdapterError(self.SOURCE_NAME, f"Request failed: {e}", e)

    def _parse_events(self, html_content: str) -> List[NormalizedEvent]:
        soup = BeautifulSoup(html_content, 'html.parser')
        events = []
        seen_urls: Set[str] = set()

        for card in soup.select(self.CARD_SELECTOR):
            try:
                event = self._parse_card(card)
            except Exception as e:
                logger.warning(f"Failed to parse event card: {e}")
                continue
            if event and event.original_event_url not in seen_urls:
                seen_urls.add(event.original_event_url)
                events.append(event)

        for item in self._json_ld_events(soup):
            try:
                event = self._build_json_ld_event(item)
            except Exception as e:
                logger.warning(f"Failed to parse JSON-LD event: {e}")
                continue
            if event and event.original_event_url not in seen_urls:
                seen_urls.add(event.original_event_url)
                events.append(event)

        return events

    def _parse_card(self, card) -> Optional[NormalizedEvent]:
        """
        Parse a single listing card.

        Args:
            card: BeautifulSoup element for one card

        Returns:
            NormalizedEvent or None if the card is not a usable event
        """
        title = self._text(card.select_one(self.TITLE_SELECTOR))
        if not title or len(title) < self.MIN_TITLE_LENGTH:
            return None

        link = card.select_one(self.LINK_SELECTOR)
        href = link.get('href') if link else None
        if not href:
            return None

        url = self._absolute_url(href)
        if self._is_listing_url(url):
            return None

        date_elem = card.select_one(self.DATE_SELECTOR)
        date_text = None
        if date_elem:
            date_text = date_elem.get('datetime') or self._text(date_elem)

        category = None
        if self.CATEGORY_SELECTOR:
            category = self._text(card.select_one(self.CATEGORY_SELECTOR))

        return self._build_card_event(
            title=title,
            url=url,
            date_text=date_text,
            venue=self._text(card.select_one(self.VENUE_SELECTOR)),
            description=self._text(card.select_one(self.DESCRIPTION_SELECTOR)),
            image_url=self._image_url(card.select_one('img')),
            category=category
        )

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
        return NormalizedEvent(
            title=title,
            date_time=date_text,
            venue_name=venue,
            venue_address=venue,
            city=self.CITY,
            description=description,
            category=category,
            tags=[category] if category else None,
            image_url=image_url,
            source_name=self.SOURCE_NAME,
            source_url=self.SOURCE_URL,
            original_event_url=url
        )

    def _json_ld_events(self, soup) -> Iterable[dict]:
        """Yield schema.org Event objects from JSON-LD script blocks."""
        for script in soup.find_all('script', type='application/ld+json'):
            try:
                data = json.loads(script.string or '{}')
            except ValueError as e:
                logger.warning(f"Invalid JSON-LD block on {self.SOURCE_URL}: {e}")
                continue

            items = data if isinstance(data, list) else [data]
            for item in items:
                if not isinstance(item, dict):
                    continue
                item_type = item.get('@type')
                types = item_type if isinstance(item_type, list) else [item_type]
                if 'Event' in types and item.get('name'):
                    yield item

    def _build_json_ld_event(self, item: dict) -> Optional[NormalizedEvent]:
        """
        Build an event from a schema.org Event object.

        Items without their own URL have no identity key and are skipped.
        """
        url = item.get('url')
        if not url:
            return None
        url = self._absolute_url(url)

        location = item.get('location') or {}
        if not isinstance(location, dict):
            location = {'name': str(location)}
        address = location.get('address')
        if isinstance(address, dict):
            address = address.get('streetAddress')

        return NormalizedEvent(
            title=item['name'].strip(),
            date_time=item.get('startDate'),
            date_time_end=item.get('endDate'),
            venue_name=location.get('name'),
            venue_address=address or None,
            city=self.CITY,
            description=item.get('description'),
            category=None,
            tags=None,
            image_url=self._json_ld_image(item.get('image')),
            source_name=self.SOURCE_NAME,
            source_url=self.SOURCE_URL,
            original_event_url=url
        )

    def _absolute_url(self, href: str) -> str:
        if href.startswith('http'):
            return href
        return urljoin(self.SITE_ORIGIN, href)

    def _is_listing_url(self, url: str) -> bool:
        return url.rstrip('/') == self.SOURCE_URL.rstrip('/')

    def _image_url(self, img) -> Optional[str]:
        if img is None:
            return None
        for attribute in self.IMAGE_ATTRIBUTES:
            if img.get(attribute):
                return img.get(attribute)
        return None

    @staticmethod
    def _json_ld_image(image) -> Optional[str]:
        if isinstance(image, list):
            image = image[0] if image else None
        if isinstance(image, dict):
            image = image.get('url')
        return image or None

    @staticmethod
    def _text(element) -> Optional[str]:
        if element is None:
            return None
        return element.get_text(strip=True) or None
