"""
Public API for the layer that owns research projects.

Wraps the orchestrator and the store behind a small surface: run discovery
for a project, and read back what was discovered.
"""

from pathlib import Path
from typing import Optional

from shared.logging import configure_logging

from .config import ScoutSettings, load_settings
from .errors import ProjectNotFound
from .models import RunSummary
from .orchestrator import Orchestrator
from .sources.firecrawl import FirecrawlProvider
from .sources.provider import ContentProvider
from .store.base import ResearchStore
from .store.database import LibraryDatabase
from .store.models import DiscoveredSource, RecommendationTier, SourceStatus

RELEVANT_THRESHOLD = 0.6


class ScoutAPI:
    """
    Public API for discovery runs and their results.

    Store and provider default to SQLite and Firecrawl built from settings.
    """

    def __init__(
        self,
        settings: Optional[ScoutSettings] = None,
        store: Optional[ResearchStore] = None,
        provider: Optional[ContentProvider] = None,
        settings_path: Optional[Path] = None,
    ):
        """
        Initialize API.

        Args:
            settings: Settings to use (loaded from settings_path if None)
            store: Persistent store (LibraryDatabase at storage.db_path if None)
            provider: Content provider (FirecrawlProvider if None)
            settings_path: settings.yaml location when settings is None
        """
        self.settings = settings or load_settings(settings_path)
        configure_logging(
            self.settings.logging.level, json=self.settings.logging.json_format
        )

        self.store = store or LibraryDatabase(self.settings.storage.db_path)
        self.provider = provider or FirecrawlProvider(
            api_key=self.settings.provider.api_key,
            base_url=self.settings.provider.base_url,
            search_timeout_seconds=self.settings.provider.search_timeout_seconds,
            scrape_grace_seconds=self.settings.fetch.timeout_grace_seconds,
        )
        self.orchestrator = Orchestrator(self.store, self.provider, self.settings)

    async def close(self):
        """Release provider connections."""
        await self.orchestrator.close()

    async def discover_and_ingest(self, project_id: str) -> RunSummary:
        """
        Discover, fetch and ingest sources for a project.

        Raises:
            ProjectNotFound, ConcurrencyConflict, ProviderUnavailable
        """
        return await self.orchestrator.discover_and_ingest(project_id)

    def list_discovered_sources(self, project_id: str) -> list[DiscoveredSource]:
        """All sources discovered for a project, in discovery order."""
        self._require_project(project_id)
        return self.orchestrator.sources.list(project_id)

    def get_project_statistics(self, project_id: str) -> dict:
        """
        Get discovery statistics for a project.

        Returns:
            Dict with totals per state, relevant count and per-tier counts
        """
        self._require_project(project_id)
        sources = self.orchestrator.sources.list(project_id)

        by_state = {status.value: 0 for status in SourceStatus}
        by_tier = {tier.value: 0 for tier in RecommendationTier}
        for source in sources:
            by_state[source.state.status.value] += 1
            by_tier[source.recommendation_tier.value] += 1

        return {
            "project_id": project_id,
            "sources_discovered": len(sources),
            "sources_ingested": by_state[SourceStatus.INGESTED.value],
            "sources_pending": len(sources) - by_state[SourceStatus.INGESTED.value],
            "by_state": by_state,
            "by_tier": by_tier,
            "relevant_sources": sum(
                1 for s in sources if s.relevance_score > RELEVANT_THRESHOLD
            ),
        }

    def get_recent_runs(self, project_id: str, limit: int = 10) -> list[dict]:
        """Most recent runs for a project, newest first."""
        return [run.to_dict() for run in self.store.get_runs(project_id, limit=limit)]

    def get_statistics(self) -> dict:
        """Store-wide counts, when the store provides them."""
        return self.store.get_statistics()

    def _require_project(self, project_id: str):
        if self.store.get_project(project_id) is None:
            raise ProjectNotFound(project_id)
