"""
Library ingestion.

Commits fetched content to the text library and links it back to the
discovered source it came from.
"""

from typing import Optional

from shared.logging import get_logger

from .errors import StoreError, IngestionConflict
from .store.base import ResearchStore
from .store.models import DiscoveredSource, LibraryText
from .store.sources import DiscoveredSourceStore

log = get_logger("scout", "ingest")


class LibraryIngestor:
    """
    Two-phase ingestion: write the LibraryText, then mark the source.

    If the process dies between the two writes, the text is left unlinked
    and reconcile() finishes the job on the next run.
    """

    def __init__(self, store: ResearchStore, sources: Optional[DiscoveredSourceStore] = None):
        self.store = store
        self.sources = sources or DiscoveredSourceStore(store)

    def ingest(
        self,
        source: DiscoveredSource,
        content: str,
        title: Optional[str] = None,
        author: Optional[str] = None,
    ) -> LibraryText:
        """
        Add content to the library as a text for this source.

        Args:
            source: Source the content was fetched from
            content: Cleaned content
            title: Title extracted from the content, used when the source has none
            author: Author extracted from the content

        Returns:
            The new LibraryText, or the existing one if the source was
            already ingested

        Raises:
            StoreError: a write failed
        """
        current = self.store.get_source(source.id)
        if current is None:
            raise StoreError(f"Unknown discovered source: {source.id}")

        if current.text_added_to_library:
            existing = self.store.get_library_text(current.library_text_id)
            if existing is None:
                raise StoreError(
                    f"Source {current.id} points at missing library text {current.library_text_id}"
                )
            log.info("ingest.already_ingested", source_id=current.id, text_id=existing.id)
            return existing

        # Search titles are cleaner; the url stands in when the hit had none
        if current.title and current.title != current.url:
            text_title = current.title
        else:
            text_title = title or current.title

        text_author = author or current.author
        if not text_author or text_author == "Unknown":
            text_author = current.source_site

        text = LibraryText.from_source(current, content, title=text_title, author=text_author)
        self.store.add_library_text(text)
        log.debug("ingest.text.written", source_id=current.id, text_id=text.id)

        self.sources.mark_ingested(current.id, text.id)
        log.info(
            "ingest.complete",
            source_id=current.id,
            text_id=text.id,
            url=current.url[:80],
            length=len(content),
        )
        return text

    def reconcile(self, project_id: str) -> int:
        """
        Link library texts whose source was never marked ingested.

        Safe to call repeatedly.

        Returns:
            Number of sources newly marked
        """
        linked = 0
        for source_id, text_id in self.store.find_unlinked_texts(project_id):
            try:
                if self.sources.mark_ingested(source_id, text_id):
                    linked += 1
            except IngestionConflict:
                raise
            except StoreError as e:
                log.warning(
                    "ingest.reconcile.failed",
                    source_id=source_id,
                    text_id=text_id,
                    error=str(e),
                )

        if linked:
            log.info("ingest.reconcile.complete", project_id=project_id, linked=linked)
        return linked
