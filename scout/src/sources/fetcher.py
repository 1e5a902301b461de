"""
Content fetcher.

Scrapes a page through the content provider, cleans the markdown, and
rejects pages too short to be worth adding to the library.
"""

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlparse

from shared.logging import get_logger

from ..errors import ProviderError, ContentInsufficient
from .provider import ContentProvider
from .scorer import extract_author

log = get_logger("scout", "fetcher")

GUTENBERG_START = "*** START OF THE PROJECT GUTENBERG EBOOK"
GUTENBERG_END = "*** END OF THE PROJECT GUTENBERG EBOOK"

TITLE_PATTERNS = [
    re.compile(r'^#\s+(.+)$', re.MULTILINE),
    re.compile(r'^##\s+(.+)$', re.MULTILINE),
    re.compile(r'^Title:\s*(.+)$', re.MULTILINE | re.IGNORECASE),
    re.compile(r'^(.+)\n=+$', re.MULTILINE),
]

NOISE_PATTERNS = [
    (re.compile(r'\[Skip to.*?\]', re.IGNORECASE), ''),
    (re.compile(r'\[\s*Advertisement\s*\]', re.IGNORECASE), ''),
    (re.compile(r'^Navigation.*$', re.MULTILINE), ''),
    (re.compile(r'^Menu.*$', re.MULTILINE), ''),
    (re.compile(r'\[Edit\]'), ''),
    (re.compile(r'\[\d+\]'), ''),  # Footnote markers
    (re.compile(r'^Search.*$', re.MULTILINE), ''),
    (re.compile(r'Cookie Policy.*$', re.MULTILINE), ''),
    (re.compile(r'Privacy Policy.*$', re.MULTILINE), ''),
]


@dataclass
class FetchedContent:
    """Cleaned page content ready for ingestion."""
    url: str
    content: str
    title: Optional[str] = None
    author: Optional[str] = None
    fetched_at: datetime = field(default_factory=datetime.now)

    @property
    def length(self) -> int:
        return len(self.content)


class ContentFetcher:
    """
    Fetches full page content through a ContentProvider.

    Features:
    - Bounded timeout around every scrape
    - Per-domain politeness delay
    - Boilerplate and Gutenberg header cleanup
    - Minimum length check on the cleaned text
    """

    def __init__(
        self,
        provider: ContentProvider,
        timeout_ms: int = 15000,
        min_content_length: int = 500,
        formats: Optional[list[str]] = None,
        min_domain_delay_seconds: float = 0,
        timeout_grace_seconds: float = 5,
    ):
        """
        Initialize fetcher.

        Args:
            provider: Scrape capability
            timeout_ms: Provider-side scrape timeout
            min_content_length: Shortest cleaned content accepted, in characters
            formats: Requested output formats
            min_domain_delay_seconds: Minimum spacing of fetches to one domain
            timeout_grace_seconds: Extra wait beyond timeout_ms before giving up
        """
        self.provider = provider
        self.timeout_ms = timeout_ms
        self.min_content_length = min_content_length
        self.formats = formats or ["markdown"]
        self.timeout_grace_seconds = timeout_grace_seconds
        self._min_delay_seconds = min_domain_delay_seconds

        # Rate limiting per domain
        self._domain_next_slot: dict[str, datetime] = {}

    async def fetch(self, url: str) -> FetchedContent:
        """
        Fetch and clean the content at a URL.

        Args:
            url: Page to fetch

        Returns:
            FetchedContent with cleaned text of at least min_content_length

        Raises:
            ProviderError: the provider failed, answered unsuccessfully or timed out
            ContentInsufficient: the cleaned text is too short
        """
        domain = urlparse(url).netloc
        await self._wait_for_rate_limit(domain)

        deadline = self.timeout_ms / 1000 + self.timeout_grace_seconds
        try:
            result = await asyncio.wait_for(
                self.provider.scrape(url, formats=self.formats, timeout_ms=self.timeout_ms),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            log.warning("fetcher.fetch.timeout", url=url[:80], timeout=deadline)
            raise ProviderError(f"Scrape of {url} timed out after {deadline} seconds", kind="timeout")

        if not result.success:
            raise ProviderError(
                f"Scrape of {url} was not successful: {result.error or 'no content'}",
                kind="bad_response",
            )

        raw = result.content or ""
        content = clean_text(raw)
        if len(content) < self.min_content_length:
            log.info(
                "fetcher.fetch.insufficient",
                url=url[:80],
                length=len(content),
                minimum=self.min_content_length,
            )
            raise ContentInsufficient(url, len(content), self.min_content_length)

        fetched = FetchedContent(
            url=url,
            content=content,
            title=(result.title or "").strip() or extract_title(raw),
            author=extract_author(raw),
        )
        log.info("fetcher.fetch.success", url=url[:80], length=fetched.length)
        return fetched

    async def _wait_for_rate_limit(self, domain: str):
        """Wait if necessary to respect the per-domain delay."""
        if self._min_delay_seconds <= 0:
            return

        now = datetime.now()
        slot = max(now, self._domain_next_slot.get(domain, now))
        # Reserve the slot before sleeping so concurrent fetches queue up
        self._domain_next_slot[domain] = slot + timedelta(seconds=self._min_delay_seconds)

        wait_time = (slot - now).total_seconds()
        if wait_time > 0:
            log.debug("fetcher.rate_limit_wait", domain=domain, wait=wait_time)
            await asyncio.sleep(wait_time)


def clean_text(text: str) -> str:
    """Strip boilerplate, Gutenberg wrapper and excess whitespace."""
    start = text.find(GUTENBERG_START)
    end = text.find(GUTENBERG_END)
    if start != -1 and end != -1 and end > start:
        text = text[start + len(GUTENBERG_START):end]
        # Drop the remainder of the marker line
        text = text.split("\n", 1)[1] if "\n" in text else ""

    for pattern, replacement in NOISE_PATTERNS:
        text = pattern.sub(replacement, text)

    text = re.sub(r'\n{3,}', '\n\n', text)
    text = re.sub(r'[ \t]{2,}', ' ', text)
    return text.strip()


def extract_title(markdown: str) -> Optional[str]:
    """Find a title in markdown: a heading, a Title: line, or the first long line."""
    if not markdown:
        return None
    for pattern in TITLE_PATTERNS:
        match = pattern.search(markdown)
        if match:
            return match.group(1).strip()

    for line in markdown.split("\n"):
        if len(line.strip()) > 10:
            return line.strip()
    return None
