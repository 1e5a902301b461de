"""
Source discovery, scoring, and fetching modules.

Uses a ContentProvider (Firecrawl by default) for web access.
"""

from .provider import ContentProvider, SearchHit, ScrapeResult
from .firecrawl import FirecrawlProvider
from .discoverer import SourceDiscoverer
from .scorer import SourceScore, score, source_site_for
from .fetcher import ContentFetcher, FetchedContent

__all__ = [
    "ContentProvider",
    "SearchHit",
    "ScrapeResult",
    "FirecrawlProvider",
    "SourceDiscoverer",
    "SourceScore",
    "score",
    "source_site_for",
    "ContentFetcher",
    "FetchedContent",
]
