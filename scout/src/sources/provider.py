"""
Content provider interface.

A provider answers search queries and scrapes pages. The pipeline only
depends on this interface; FirecrawlProvider is the default implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse


@dataclass
class SearchHit:
    """One search result for a discovery query."""
    url: str
    title: str = ""
    snippet: str = ""
    domain: str = ""
    search_term: str = ""

    def __post_init__(self):
        if not self.domain:
            self.domain = urlparse(self.url).netloc.lower()


@dataclass
class ScrapeResult:
    """Raw answer from a scrape call."""
    success: bool
    content: str = ""
    title: Optional[str] = None
    error: Optional[str] = None

    @property
    def length(self) -> int:
        return len(self.content)


class ContentProvider(ABC):
    """
    Search and scrape capability.

    Implementations raise ProviderError (or ProviderUnreachable when the
    service cannot be contacted at all) rather than returning partial data.
    """

    @abstractmethod
    async def query(self, term: str, limit: int) -> list[SearchHit]:
        """
        Search for documents matching a term.

        Args:
            term: Search term
            limit: Maximum number of hits

        Returns:
            Hits in provider rank order
        """
        pass

    @abstractmethod
    async def scrape(
        self,
        url: str,
        formats: Optional[list[str]] = None,
        timeout_ms: int = 15000,
    ) -> ScrapeResult:
        """
        Fetch the full content of a page.

        Args:
            url: Page to scrape
            formats: Requested output formats, e.g. ["markdown"]
            timeout_ms: Provider-side timeout
        """
        pass

    async def close(self):
        """Release any held connections."""
        pass
