"""
Firecrawl content provider.

Talks to the Firecrawl v1 REST API (/v1/search, /v1/scrape) over aiohttp
and maps transport and HTTP failures onto ProviderError kinds.
"""

import asyncio
import os
from typing import Optional

import aiohttp

from shared.logging import get_logger

from ..errors import ProviderError, ProviderUnreachable
from .provider import ContentProvider, SearchHit, ScrapeResult

log = get_logger("scout", "firecrawl")

DEFAULT_BASE_URL = "https://api.firecrawl.dev"


class FirecrawlProvider(ContentProvider):
    """
    Search and scrape through Firecrawl.

    Features:
    - Lazy shared HTTP session
    - Bearer auth from argument or FIRECRAWL_API_KEY
    - HTTP status mapped to ProviderError kinds (auth, rate_limited, server)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        search_timeout_seconds: float = 20,
        scrape_grace_seconds: float = 5,
    ):
        """
        Initialize the provider.

        Args:
            api_key: Firecrawl API key (or uses FIRECRAWL_API_KEY env var)
            base_url: API root
            search_timeout_seconds: Client-side timeout for search calls
            scrape_grace_seconds: Extra client-side wait beyond a scrape's own timeout
        """
        self.base_url = base_url.rstrip("/")
        self.search_timeout_seconds = search_timeout_seconds
        self.scrape_grace_seconds = scrape_grace_seconds
        self._api_key = api_key or os.environ.get("FIRECRAWL_API_KEY")
        self._http_session: Optional[aiohttp.ClientSession] = None

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    async def close(self):
        """Close HTTP session."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
            self._http_session = None

    async def _post(self, path: str, payload: dict, timeout_seconds: float) -> dict:
        """POST a JSON payload and return the decoded body of a successful call."""
        if not self._api_key:
            raise ProviderUnreachable("Firecrawl API key is not configured")

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            session = await self._get_http_session()
            async with session.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout_seconds),
            ) as resp:
                if resp.status in (401, 403):
                    raise ProviderError(f"Firecrawl rejected credentials ({resp.status})", kind="auth")
                if resp.status == 429:
                    raise ProviderError(
                        "Firecrawl rate limit exceeded",
                        kind="rate_limited",
                        retry_after_seconds=_parse_retry_after(resp.headers.get("Retry-After")),
                    )
                if resp.status >= 500:
                    raise ProviderError(f"Firecrawl server error ({resp.status})", kind="server")
                if resp.status != 200:
                    raise ProviderError(f"Firecrawl returned status {resp.status}", kind="bad_response")

                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(f"Firecrawl returned invalid JSON: {e}", kind="bad_response")

        except aiohttp.ClientConnectorError as e:
            log.error("firecrawl.connect_failed", path=path, error=str(e))
            raise ProviderUnreachable(f"Could not connect to Firecrawl: {e}")

        except aiohttp.ClientError as e:
            raise ProviderError(f"Firecrawl request failed: {e}", kind="network")

        except asyncio.TimeoutError:
            raise ProviderError(
                f"Firecrawl request timed out after {timeout_seconds} seconds",
                kind="timeout",
            )

        if not isinstance(data, dict) or not data.get("success", False):
            error = data.get("error") if isinstance(data, dict) else None
            raise ProviderError(f"Firecrawl call was not successful: {error or 'unknown error'}",
                                kind="bad_response")
        return data

    async def query(self, term: str, limit: int) -> list[SearchHit]:
        """Search Firecrawl for a term."""
        data = await self._post(
            "/v1/search",
            {"query": term, "limit": limit},
            timeout_seconds=self.search_timeout_seconds,
        )

        items = data.get("data") or []
        if not isinstance(items, list):
            raise ProviderError("Firecrawl search returned malformed data", kind="bad_response")

        hits = []
        for item in items:
            if not isinstance(item, dict):
                raise ProviderError("Firecrawl search returned a malformed result", kind="bad_response")
            url = item.get("url")
            if not isinstance(url, str) or not url:
                continue
            hits.append(SearchHit(
                url=url,
                title=_text(item.get("title")),
                snippet=_text(item.get("description")) or _text(item.get("markdown")),
                search_term=term,
            ))

        log.debug("firecrawl.search.complete", term=term, hits=len(hits))
        return hits[:limit]

    async def scrape(
        self,
        url: str,
        formats: Optional[list[str]] = None,
        timeout_ms: int = 15000,
    ) -> ScrapeResult:
        """Scrape a page's main content."""
        formats = formats or ["markdown"]
        data = await self._post(
            "/v1/scrape",
            {
                "url": url,
                "formats": formats,
                "onlyMainContent": True,
                "timeout": timeout_ms,
            },
            # Leave room for the provider to report its own timeout
            timeout_seconds=timeout_ms / 1000 + self.scrape_grace_seconds,
        )

        page = data.get("data") or {}
        if not isinstance(page, dict):
            raise ProviderError(f"Firecrawl scrape of {url} returned malformed data", kind="bad_response")

        content = ""
        for fmt in formats:
            value = page.get(fmt)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ProviderError(
                    f"Firecrawl scrape of {url} returned non-text {fmt} content",
                    kind="bad_response",
                )
            if value:
                content = value
                break

        metadata = page.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ProviderError(f"Firecrawl scrape of {url} returned malformed metadata", kind="bad_response")
        title = metadata.get("title")
        return ScrapeResult(
            success=True,
            content=content,
            title=title if isinstance(title, str) else None,
        )


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a Retry-After header given in seconds."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _text(value) -> str:
    """A string field from a response item, or empty if missing or not text."""
    return value if isinstance(value, str) else ""
