"""Shared fixtures for scout tests."""

import asyncio
from typing import Optional

import pytest

from scout.src.config import ScoutSettings
from scout.src.errors import ProviderError
from scout.src.sources.provider import ContentProvider, SearchHit, ScrapeResult
from scout.src.store.database import LibraryDatabase
from scout.src.store.models import ResearchProject

URL_A = "https://plato.stanford.edu/entries/consciousness/"
URL_B = "https://example.com/consciousness-essay"

PARAGRAPH = (
    "Consciousness is the state of being aware of an internal or external "
    "existence, and it has been studied by philosophers for centuries. "
)


def make_page(title: str = "On Consciousness", length: int = 800) -> str:
    """Markdown page whose body is at least `length` characters."""
    body = ""
    while len(body) < length:
        body += PARAGRAPH
    return f"# {title}\n\n{body.strip()}"


class FakeProvider(ContentProvider):
    """
    In-memory content provider.

    hits maps a search term to a list of SearchHit (or an exception to raise);
    pages maps a url to markdown (or an exception to raise).
    """

    def __init__(self, hits: Optional[dict] = None, pages: Optional[dict] = None):
        self.hits = hits or {}
        self.pages = pages or {}
        self.queries: list[str] = []
        self.scrapes: list[str] = []
        self.closed = False

    async def query(self, term: str, limit: int) -> list[SearchHit]:
        self.queries.append(term)
        result = self.hits.get(term, [])
        if isinstance(result, Exception):
            raise result
        # Fresh objects each call, like a real provider
        return [SearchHit(url=h.url, title=h.title, snippet=h.snippet) for h in result][:limit]

    async def scrape(self, url, formats=None, timeout_ms=15000) -> ScrapeResult:
        self.scrapes.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            return ScrapeResult(success=False, error="no page")
        return ScrapeResult(success=True, content=page)

    async def close(self):
        self.closed = True


class BlockingProvider(FakeProvider):
    """FakeProvider whose scrapes wait until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.scrape_started = asyncio.Event()
        self.release = asyncio.Event()

    async def scrape(self, url, formats=None, timeout_ms=15000) -> ScrapeResult:
        self.scrape_started.set()
        await self.release.wait()
        return await super().scrape(url, formats=formats, timeout_ms=timeout_ms)


class PeakCountingProvider(FakeProvider):
    """FakeProvider that records the most scrapes ever in flight at once."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak = 0

    async def scrape(self, url, formats=None, timeout_ms=15000) -> ScrapeResult:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().scrape(url, formats=formats, timeout_ms=timeout_ms)
        finally:
            self.in_flight -= 1


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite store."""
    return LibraryDatabase(tmp_path / "scout.db")


@pytest.fixture
def settings(tmp_path):
    """Default settings pointing at a temporary database."""
    return ScoutSettings.model_validate({"storage": {"db_path": str(tmp_path / "scout.db")}})


@pytest.fixture
def project(db):
    """A saved project with one search term."""
    project = ResearchProject(id="proj-1", title="Philosophy of Mind", search_terms=["consciousness"])
    db.save_project(project)
    return project


@pytest.fixture
def two_hit_provider():
    """Provider returning hits A (fetchable) and B (network error on fetch)."""
    return FakeProvider(
        hits={
            "consciousness": [
                SearchHit(url=URL_A, title="Consciousness (Stanford Encyclopedia)",
                          snippet="An overview of theories of consciousness."),
                SearchHit(url=URL_B, title="An essay on consciousness",
                          snippet="Thoughts about consciousness and mind."),
            ]
        },
        pages={
            URL_A: make_page(),
            URL_B: ProviderError("Connection reset by peer", kind="network"),
        },
    )
