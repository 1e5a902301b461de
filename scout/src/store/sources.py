"""
Discovered source store.

Thin layer over a ResearchStore that owns the rules for discovered sources:
deduplication per (project, url), refresh-without-reset, and the
idempotent ingestion transition.
"""

from typing import Union

from shared.logging import get_logger

from .base import ResearchStore
from .models import DiscoveredSource, Failed, Insufficient

log = get_logger("scout", "sources")


class DiscoveredSourceStore:
    """Records discovered sources and their ingestion state."""

    def __init__(self, store: ResearchStore):
        self.store = store

    def persist(self, source: DiscoveredSource) -> tuple[DiscoveredSource, bool]:
        """
        Insert a source, or refresh an existing one for the same (project, url).

        A refresh updates scores, tier and preview only. The stored id, title,
        discovery date and ingestion state are kept.

        Returns:
            (stored source, True if it was newly created)
        """
        stored, created = self.store.upsert_source(source)
        if created:
            log.debug("sources.persist.created", source_id=stored.id, url=stored.url)
        else:
            log.debug("sources.persist.refreshed", source_id=stored.id, url=stored.url)
        return stored, created

    def count(self, project_id: str) -> int:
        return self.store.count_sources(project_id)

    def pending(self, project_id: str) -> list[DiscoveredSource]:
        """Sources not yet ingested, in discovery order."""
        return [s for s in self.store.get_sources(project_id) if s.is_pending]

    def mark_ingested(self, source_id: str, text_id: str) -> bool:
        """
        Mark a source as committed to the library.

        Marking again with the same text id is a no-op.

        Returns:
            True if the source transitioned, False if it was already marked

        Raises:
            IngestionConflict: source already ingested under another text id
            StoreError: unknown source or write failure
        """
        changed = self.store.mark_ingested(source_id, text_id)
        if changed:
            log.info("sources.ingested", source_id=source_id, text_id=text_id)
        else:
            log.debug("sources.ingested.noop", source_id=source_id, text_id=text_id)
        return changed

    def record_outcome(self, source_id: str, outcome: Union[Failed, Insufficient]) -> bool:
        """Record a failed fetch attempt. Ingested sources are left alone."""
        return self.store.set_source_state(source_id, outcome)

    def list(self, project_id: str) -> list[DiscoveredSource]:
        """All sources for a project, in discovery order."""
        return self.store.get_sources(project_id)
