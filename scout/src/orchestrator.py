"""
Scout orchestrator - discover, score, fetch and ingest for one project.

One run:
1. Load the project and take its run lease
2. Discover hits for the project's search terms
3. Score and record them (deduplicated per project and url)
4. Finish half-done ingests from earlier runs
5. Fetch and ingest the best pending sources, concurrently
6. Record the run and release the lease
"""

import asyncio
from datetime import datetime
from typing import Optional

from shared.logging import get_logger, correlation_context

from .config import ScoutSettings
from .errors import (
    ProviderError, ContentInsufficient, StoreError, IngestionConflict, ProjectNotFound
)
from .ingest import LibraryIngestor
from .lease import ProjectRunLock
from .models import RunSummary, SourceFailure
from .sources.discoverer import SourceDiscoverer
from .sources.fetcher import ContentFetcher
from .sources.provider import ContentProvider, SearchHit
from .sources.scorer import score, source_site_for, extract_author
from .store.base import ResearchStore
from .store.models import (
    DiscoveredSource, Failed, Insufficient, RecommendationTier, ResearchProject,
    RunRecord,
)
from .store.sources import DiscoveredSourceStore

log = get_logger("scout", "orchestrator")

PREVIEW_LENGTH = 500


class Orchestrator:
    """
    Runs the discover-and-ingest pipeline.

    Store and provider are injected; settings supply the limits.
    """

    def __init__(
        self,
        store: ResearchStore,
        provider: ContentProvider,
        settings: Optional[ScoutSettings] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Persistent store for projects, sources and texts
            provider: Search and scrape capability
            settings: Limits and thresholds (defaults if None)
        """
        self.store = store
        self.provider = provider
        self.settings = settings or ScoutSettings()

        self._init_components()

    def _init_components(self):
        """Initialize all pipeline components."""
        pipeline = self.settings.pipeline
        fetch = self.settings.fetch

        self.sources = DiscoveredSourceStore(self.store)
        self.discoverer = SourceDiscoverer(
            self.provider,
            max_search_terms=self.settings.discovery.max_search_terms,
            max_in_flight=pipeline.max_in_flight,
        )
        self.fetcher = ContentFetcher(
            self.provider,
            timeout_ms=fetch.timeout_ms,
            min_content_length=fetch.min_content_length,
            formats=fetch.formats,
            min_domain_delay_seconds=fetch.min_domain_delay_seconds,
            timeout_grace_seconds=fetch.timeout_grace_seconds,
        )
        self.ingestor = LibraryIngestor(self.store, self.sources)
        self.lock = ProjectRunLock(self.store, ttl_seconds=pipeline.lease_ttl_seconds)

    async def close(self):
        """Release provider connections."""
        await self.provider.close()

    async def discover_and_ingest(self, project_id: str) -> RunSummary:
        """
        Run the full pipeline for a project.

        Args:
            project_id: Project to research

        Returns:
            RunSummary for this run

        Raises:
            ProjectNotFound: no such project
            ConcurrencyConflict: a run for this project is already in flight
            ProviderUnavailable: the provider could not be reached at all
        """
        project = self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)

        run = RunRecord.start(project_id)
        with correlation_context(run.id, project_id=project_id):
            with self.lock.hold(project_id, holder=run.id):
                log.info("orchestrator.run.start", title=project.title)
                self._save_run(run)

                try:
                    summary = await self._run(project, run)
                except Exception as e:
                    run.status = "aborted"
                    run.error = f"{type(e).__name__}: {e}"
                    run.finished_at = datetime.now()
                    log.error("orchestrator.run.aborted", error=run.error)
                    self._save_run(run)
                    raise

                run.status = "completed"
                run.finished_at = datetime.now()
                run.sources_found = summary.sources_found
                run.sources_added = summary.sources_added
                run.sources_fetched_successfully = summary.sources_fetched_successfully
                run.failure_count = len(summary.failures)
                self._save_run(run)

                log.info(
                    "orchestrator.run.complete",
                    found=summary.sources_found,
                    on_file=summary.sources_added,
                    fetched=summary.sources_fetched_successfully,
                    failures=len(summary.failures),
                )
                return summary

    async def _run(self, project: ResearchProject, run: RunRecord) -> RunSummary:
        """Body of a run, called with the lease held."""
        failures: list[SourceFailure] = []

        # Discover and record
        hits = await self.discoverer.discover(
            project, limit=self.settings.discovery.results_per_term
        )
        found = 0
        for hit in hits:
            try:
                _, created = self.sources.persist(self._to_source(hit, project))
            except StoreError as e:
                log.warning("orchestrator.persist.failed", url=hit.url[:80], error=str(e))
                failures.append(SourceFailure(url=hit.url, reason="StoreError", message=str(e)))
                continue
            if created:
                found += 1

        # Finish ingests interrupted between writing the text and marking the source
        try:
            self.ingestor.reconcile(project.id)
        except IngestionConflict:
            raise
        except StoreError as e:
            log.warning("orchestrator.reconcile.failed", error=str(e))

        selected = self._select_candidates(project.id)
        log.info("orchestrator.candidates.selected", hits=len(hits), new=found, selected=len(selected))

        semaphore = asyncio.Semaphore(self.settings.pipeline.max_in_flight)
        results = await asyncio.gather(
            *(self._fetch_and_ingest(semaphore, source) for source in selected),
            return_exceptions=True,
        )

        fetched_ok = 0
        for result in results:
            if isinstance(result, BaseException):
                raise result
            if result is None:
                fetched_ok += 1
            else:
                failures.append(result)

        return RunSummary(
            project_id=project.id,
            run_id=run.id,
            sources_found=found,
            sources_added=self.sources.count(project.id),
            sources_fetched_successfully=fetched_ok,
            failures=failures,
        )

    def _to_source(self, hit: SearchHit, project: ResearchProject) -> DiscoveredSource:
        """Build a scored DiscoveredSource from a search hit."""
        scores = score(hit, project)
        return DiscoveredSource.create(
            project_id=project.id,
            url=hit.url,
            title=hit.title,
            author=extract_author(hit.snippet) or "Unknown",
            source_site=source_site_for(hit.url),
            search_term=hit.search_term,
            quality_score=scores.quality_score,
            relevance_score=scores.relevance_score,
            credibility_score=scores.credibility_score,
            recommendation_tier=scores.recommendation_tier,
            content_preview=hit.snippet[:PREVIEW_LENGTH],
        )

    def _select_candidates(self, project_id: str) -> list[DiscoveredSource]:
        """Pending sources, best tier first, discovery order within a tier."""
        candidates = self.sources.pending(project_id)
        if self.settings.pipeline.skip_low_priority:
            candidates = [
                s for s in candidates if s.recommendation_tier != RecommendationTier.LOW
            ]
        # sorted() is stable, so discovery order holds within a tier
        candidates = sorted(candidates, key=lambda s: s.recommendation_tier.rank)
        return candidates[:self.settings.pipeline.max_fetches_per_run]

    async def _fetch_and_ingest(
        self,
        semaphore: asyncio.Semaphore,
        source: DiscoveredSource,
    ) -> Optional[SourceFailure]:
        """
        Fetch one source and ingest it.

        Returns:
            None on success, otherwise the failure to report
        """
        async with semaphore:
            try:
                fetched = await self.fetcher.fetch(source.url)
            except ProviderError as e:
                log.warning("orchestrator.fetch.failed", url=source.url[:80], kind=e.kind, error=str(e))
                self._record_outcome(source, Failed(reason=e.kind))
                return SourceFailure(url=source.url, reason="ProviderError", message=str(e))
            except ContentInsufficient as e:
                log.warning("orchestrator.fetch.insufficient", url=source.url[:80], length=e.length)
                self._record_outcome(source, Insufficient(length=e.length))
                return SourceFailure(url=source.url, reason="ContentInsufficient", message=str(e))

            try:
                self.ingestor.ingest(
                    source, fetched.content, title=fetched.title, author=fetched.author
                )
            except IngestionConflict:
                raise
            except StoreError as e:
                log.warning("orchestrator.ingest.failed", url=source.url[:80], error=str(e))
                return SourceFailure(url=source.url, reason="StoreError", message=str(e))

        return None

    def _record_outcome(self, source: DiscoveredSource, outcome):
        """Store the outcome of a failed attempt. A store failure here is logged only."""
        try:
            self.sources.record_outcome(source.id, outcome)
        except StoreError as e:
            log.warning("orchestrator.outcome.not_recorded", source_id=source.id, error=str(e))

    def _save_run(self, run: RunRecord):
        """Write run history. A store failure here is logged only."""
        try:
            self.store.save_run(run)
        except StoreError as e:
            log.warning("orchestrator.run.not_recorded", run_id=run.id, error=str(e))
