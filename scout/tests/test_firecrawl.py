"""Tests for the Firecrawl provider."""

import asyncio
import os
import pytest
from unittest.mock import MagicMock, AsyncMock, patch

import aiohttp

from scout.src.errors import ProviderError, ProviderUnreachable
from scout.src.sources.firecrawl import FirecrawlProvider


def _mock_session(status=200, json_data=None, headers=None):
    """Session whose post() yields a response with the given status and body."""
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.headers = headers or {}
    mock_response.json = AsyncMock(return_value=json_data)

    mock_context = AsyncMock()
    mock_context.__aenter__ = AsyncMock(return_value=mock_response)
    mock_context.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=mock_context)
    return mock_session


class TestFirecrawlInit:
    """Tests for FirecrawlProvider initialization."""

    def test_key_from_arg(self):
        assert FirecrawlProvider(api_key="fc-key")._api_key == "fc-key"

    def test_key_from_env(self):
        with patch.dict(os.environ, {"FIRECRAWL_API_KEY": "fc-env"}):
            assert FirecrawlProvider()._api_key == "fc-env"

    def test_base_url_trailing_slash_stripped(self):
        provider = FirecrawlProvider(api_key="k", base_url="http://localhost:3002/")
        assert provider.base_url == "http://localhost:3002"

    @pytest.mark.asyncio
    async def test_missing_key_is_unreachable(self):
        with patch.dict(os.environ, {}, clear=True):
            provider = FirecrawlProvider()
        with pytest.raises(ProviderUnreachable):
            await provider.query("qualia", 5)

    @pytest.mark.asyncio
    async def test_close(self):
        provider = FirecrawlProvider(api_key="k")
        mock_session = MagicMock()
        mock_session.closed = False
        mock_session.close = AsyncMock()
        provider._http_session = mock_session

        await provider.close()

        mock_session.close.assert_called_once()
        assert provider._http_session is None


class TestFirecrawlQuery:
    """Tests for search."""

    @pytest.mark.asyncio
    async def test_parses_hits(self):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={
            "success": True,
            "data": [
                {"url": "https://plato.stanford.edu/entries/qualia/", "title": "Qualia",
                 "description": "Qualia are the subjective aspects of experience."},
                {"title": "no url, skipped"},
                {"url": "https://arxiv.org/abs/1", "title": None, "description": None},
            ],
        })

        with patch.object(provider, "_get_http_session", return_value=session):
            hits = await provider.query("qualia", 5)

        assert [h.url for h in hits] == ["https://plato.stanford.edu/entries/qualia/", "https://arxiv.org/abs/1"]
        assert hits[0].domain == "plato.stanford.edu"
        assert hits[0].snippet.startswith("Qualia are")
        assert hits[0].search_term == "qualia"
        assert hits[1].title == ""

        args, kwargs = session.post.call_args
        assert args[0] == "https://api.firecrawl.dev/v1/search"
        assert kwargs["json"] == {"query": "qualia", "limit": 5}
        assert kwargs["headers"]["Authorization"] == "Bearer k"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, kind", [
        (401, "auth"),
        (403, "auth"),
        (500, "server"),
        (503, "server"),
        (404, "bad_response"),
    ])
    async def test_http_status_mapping(self, status, kind):
        provider = FirecrawlProvider(api_key="k")
        with patch.object(provider, "_get_http_session", return_value=_mock_session(status=status)):
            with pytest.raises(ProviderError) as exc_info:
                await provider.query("qualia", 5)
        assert exc_info.value.kind == kind

    @pytest.mark.asyncio
    async def test_rate_limited_with_retry_after(self):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(status=429, headers={"Retry-After": "30"})
        with patch.object(provider, "_get_http_session", return_value=session):
            with pytest.raises(ProviderError) as exc_info:
                await provider.query("qualia", 5)
        assert exc_info.value.kind == "rate_limited"
        assert exc_info.value.retry_after_seconds == 30

    @pytest.mark.asyncio
    async def test_unsuccessful_body(self):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={"success": False, "error": "Insufficient credits"})
        with patch.object(provider, "_get_http_session", return_value=session):
            with pytest.raises(ProviderError, match="Insufficient credits") as exc_info:
                await provider.query("qualia", 5)
        assert exc_info.value.kind == "bad_response"

    @pytest.mark.asyncio
    async def test_connection_refused_is_unreachable(self):
        provider = FirecrawlProvider(api_key="k")
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectorError(
            MagicMock(), OSError(111, "Connection refused")
        ))
        with patch.object(provider, "_get_http_session", return_value=session):
            with pytest.raises(ProviderUnreachable):
                await provider.query("qualia", 5)

    @pytest.mark.asyncio
    async def test_other_client_error_is_network(self):
        provider = FirecrawlProvider(api_key="k")
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ServerDisconnectedError())
        with patch.object(provider, "_get_http_session", return_value=session):
            with pytest.raises(ProviderError) as exc_info:
                await provider.query("qualia", 5)
        assert exc_info.value.kind == "network"
        assert not isinstance(exc_info.value, ProviderUnreachable)

    @pytest.mark.asyncio
    async def test_timeout(self):
        provider = FirecrawlProvider(api_key="k")
        session = MagicMock()
        session.post = MagicMock(side_effect=asyncio.TimeoutError())
        with patch.object(provider, "_get_http_session", return_value=session):
            with pytest.raises(ProviderError) as exc_info:
                await provider.query("qualia", 5)
        assert exc_info.value.kind == "timeout"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [
        {"url": "https://a.org"},
        "unexpected",
        ["https://a.org"],
        [{"url": "https://a.org"}, "unexpected"],
    ])
    async def test_malformed_results_are_bad_response(self, data):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={"success": True, "data": data})
        with patch.object(provider, "_get_http_session", return_value=session):
            with pytest.raises(ProviderError) as exc_info:
                await provider.query("qualia", 5)
        assert exc_info.value.kind == "bad_response"

    @pytest.mark.asyncio
    async def test_non_text_fields_ignored(self):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={"success": True, "data": [
            {"url": 42, "title": "numeric url, skipped"},
            {"url": "https://a.org", "title": ["Qualia"], "description": {"text": "x"}},
        ]})
        with patch.object(provider, "_get_http_session", return_value=session):
            hits = await provider.query("qualia", 5)
        assert [h.url for h in hits] == ["https://a.org"]
        assert hits[0].title == ""
        assert hits[0].snippet == ""


class TestFirecrawlScrape:
    """Tests for scrape."""

    @pytest.mark.asyncio
    async def test_returns_markdown(self):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={
            "success": True,
            "data": {"markdown": "# Qualia\n\nBody", "metadata": {"title": "Qualia (SEP)"}},
        })

        with patch.object(provider, "_get_http_session", return_value=session):
            result = await provider.scrape("https://plato.stanford.edu/entries/qualia/")

        assert result.success is True
        assert result.content == "# Qualia\n\nBody"
        assert result.length == len("# Qualia\n\nBody")
        assert result.title == "Qualia (SEP)"

        args, kwargs = session.post.call_args
        assert args[0] == "https://api.firecrawl.dev/v1/scrape"
        assert kwargs["json"] == {
            "url": "https://plato.stanford.edu/entries/qualia/",
            "formats": ["markdown"],
            "onlyMainContent": True,
            "timeout": 15000,
        }

    @pytest.mark.asyncio
    async def test_missing_content_is_empty(self):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={"success": True, "data": {}})
        with patch.object(provider, "_get_http_session", return_value=session):
            result = await provider.scrape("https://a.org")
        assert result.content == ""
        assert result.title is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [
        ["unexpected"],
        "unexpected",
        {"markdown": ["# Qualia"]},
        {"markdown": "# Qualia\n\nBody", "metadata": ["title"]},
    ])
    async def test_malformed_page_is_bad_response(self, data):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={"success": True, "data": data})
        with patch.object(provider, "_get_http_session", return_value=session):
            with pytest.raises(ProviderError) as exc_info:
                await provider.scrape("https://a.org")
        assert exc_info.value.kind == "bad_response"

    @pytest.mark.asyncio
    async def test_non_text_title_dropped(self):
        provider = FirecrawlProvider(api_key="k")
        session = _mock_session(json_data={
            "success": True,
            "data": {"markdown": "# Qualia\n\nBody", "metadata": {"title": 7}},
        })
        with patch.object(provider, "_get_http_session", return_value=session):
            result = await provider.scrape("https://a.org")
        assert result.content == "# Qualia\n\nBody"
        assert result.title is None

    @pytest.mark.asyncio
    async def test_client_timeout_includes_grace(self):
        provider = FirecrawlProvider(api_key="k", scrape_grace_seconds=2)
        session = _mock_session(json_data={"success": True, "data": {"markdown": "Body"}})
        with patch.object(provider, "_get_http_session", return_value=session):
            await provider.scrape("https://a.org", timeout_ms=10000)
        _, kwargs = session.post.call_args
        assert kwargs["timeout"].total == 12
