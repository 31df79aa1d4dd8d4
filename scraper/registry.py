"""Closed set of event sources and their adapters."""
from enum import Enum
from typing import Dict

from processor.errors import UnknownSourceError
from scraper.base import Adapter
from scraper.broadsheet import BroadsheetScraper
from scraper.city_of_sydney import CityOfSydneyScraper
from scraper.eventbrite import EventbriteScraper
from scraper.seed import SeedScraper
from scraper.timeout_sydney import TimeoutSydneyScraper


class Source(str, Enum):
    """Every source the orchestrator knows how to run, in run order."""
    SEED = 'Sydney Events Hub'
    EVENTBRITE = 'Eventbrite'
    TIMEOUT_SYDNEY = 'Timeout Sydney'
    CITY_OF_SYDNEY = 'City of Sydney'
    BROADSHEET = 'Broadsheet Sydney'

    @classmethod
    def from_name(cls, name: str) -> 'Source':
        """
        Resolve a display name to a source.

        Raises:
            UnknownSourceError: If no source has that name
        """
        try:
            return cls(name)
        except ValueError:
            raise UnknownSourceError(name) from None


SEED_SOURCE = Source.SEED


def build_adapters(timeout: int = 15) -> Dict[Source, Adapter]:
    """
    Build the adapter for every source.

    Args:
        timeout: HTTP request timeout in seconds for network adapters

    Returns:
        Mapping covering every member of Source
    """
    return {
        Source.SEED: SeedScraper(),
        Source.EVENTBRITE: EventbriteScraper(timeout=timeout),
        Source.TIMEOUT_SYDNEY: TimeoutSydneyScraper(timeout=timeout),
        Source.CITY_OF_SYDNEY: CityOfSydneyScraper(timeout=timeout),
        Source.BROADSHEET: BroadsheetScraper(timeout=timeout),
    }
