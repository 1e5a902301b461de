"""
Persistent store interface consumed by the pipeline.

The pipeline only talks to this interface, so a different storage engine (or
a test double) can be injected in place of the SQLite implementation.
Implementations raise StoreError for I/O failures.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .models import (
    ResearchProject, DiscoveredSource, LibraryText, RunRecord, SourceState
)


class ResearchStore(ABC):
    """CRUD for projects, discovered sources and library texts."""

    # --- Projects ---

    @abstractmethod
    def get_project(self, project_id: str) -> Optional[ResearchProject]:
        pass

    @abstractmethod
    def save_project(self, project: ResearchProject) -> None:
        pass

    # --- Discovered sources ---

    @abstractmethod
    def upsert_source(self, source: DiscoveredSource) -> tuple[DiscoveredSource, bool]:
        """
        Insert a source, or refresh scores/tier/preview of the existing row.

        Must be atomic per (project_id, url).

        Returns:
            (stored row, True if a new row was created)
        """
        pass

    @abstractmethod
    def get_source(self, source_id: str) -> Optional[DiscoveredSource]:
        pass

    @abstractmethod
    def get_sources(self, project_id: str) -> list[DiscoveredSource]:
        """All sources for a project in insertion order."""
        pass

    @abstractmethod
    def count_sources(self, project_id: str) -> int:
        pass

    @abstractmethod
    def mark_ingested(self, source_id: str, text_id: str) -> bool:
        """
        Atomically move a source to Ingested(text_id).

        Returns:
            True if the row transitioned, False if it already held text_id

        Raises:
            IngestionConflict: the row is ingested under a different text id
            StoreError: the row does not exist or the write failed
        """
        pass

    @abstractmethod
    def set_source_state(self, source_id: str, state: SourceState) -> bool:
        """
        Record a non-ingested outcome. Never modifies an ingested row.

        Returns:
            True if the row was updated
        """
        pass

    # --- Library texts ---

    @abstractmethod
    def add_library_text(self, text: LibraryText) -> None:
        pass

    @abstractmethod
    def get_library_text(self, text_id: str) -> Optional[LibraryText]:
        pass

    @abstractmethod
    def find_unlinked_texts(self, project_id: str) -> list[tuple[str, str]]:
        """
        Find library texts created for a project's source that was never marked.

        Returns:
            (source_id, text_id) pairs
        """
        pass

    # --- Run leases ---

    @abstractmethod
    def acquire_lease(self, project_id: str, holder: str, expires_at: datetime,
                      now: datetime) -> bool:
        """Take the project's run lease unless a live one is held by someone else."""
        pass

    @abstractmethod
    def release_lease(self, project_id: str, holder: str) -> bool:
        pass

    @abstractmethod
    def get_lease(self, project_id: str) -> Optional[dict]:
        pass

    # --- Run history ---

    @abstractmethod
    def save_run(self, run: RunRecord) -> None:
        pass

    @abstractmethod
    def get_runs(self, project_id: str, limit: int = 10) -> list[RunRecord]:
        pass

    def get_statistics(self) -> dict:
        """Store-wide counts. Optional."""
        return {}
