"""
SQLite storage for scout.

Provides storage and querying for projects, discovered sources, library
texts, run leases and run history.
"""

import sqlite3
import json
from datetime import datetime
from pathlib import Path
from typing import Optional
from contextlib import contextmanager

from shared.logging import get_logger

from ..errors import StoreError, IngestionConflict
from .base import ResearchStore
from .models import (
    ResearchProject, DiscoveredSource, LibraryText, RunRecord,
    RecommendationTier, SourceState, Ingested, SourceStatus,
    state_to_columns, state_from_columns,
)

log = get_logger("scout", "database")


class LibraryDatabase(ResearchStore):
    """SQLite database for research projects, sources and the text library."""

    def __init__(self, db_path: Path, busy_timeout: float = 10.0):
        """
        Initialize database and create the schema if needed.

        Args:
            db_path: Path to the SQLite file
            busy_timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()
        log.debug("database.initialized", path=str(self.db_path))

    @contextmanager
    def _connection(self):
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        except sqlite3.Error as e:
            raise StoreError(f"Could not open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self):
        """Initialize database schema."""
        with self._connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    search_terms TEXT DEFAULT '[]',
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                );

                -- One row per (project, url); never deleted
                CREATE TABLE IF NOT EXISTS discovered_sources (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    url TEXT NOT NULL,
                    title TEXT,
                    author TEXT,
                    source_site TEXT DEFAULT 'Web',
                    search_term TEXT,
                    quality_score REAL DEFAULT 0,
                    relevance_score REAL DEFAULT 0,
                    credibility_score REAL DEFAULT 0,
                    recommendation_tier TEXT DEFAULT 'low_priority',
                    content_preview TEXT,
                    discovery_date TEXT,
                    state TEXT NOT NULL DEFAULT 'pending',
                    state_detail TEXT,
                    UNIQUE (project_id, url),
                    FOREIGN KEY (project_id) REFERENCES projects(id)
                );

                CREATE TABLE IF NOT EXISTS library_texts (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT,
                    content TEXT NOT NULL,
                    source_url TEXT NOT NULL,
                    source_site TEXT,
                    discovered_via TEXT DEFAULT 'autonomous_research',
                    discovered_source_id TEXT,
                    upload_date TEXT DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (discovered_source_id) REFERENCES discovered_sources(id)
                );

                -- Single-flight lock per project; expires_at is epoch seconds
                CREATE TABLE IF NOT EXISTS run_leases (
                    project_id TEXT PRIMARY KEY,
                    holder TEXT NOT NULL,
                    acquired_at REAL NOT NULL,
                    expires_at REAL NOT NULL
                );

                CREATE TABLE IF NOT EXISTS discovery_runs (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    finished_at TEXT,
                    status TEXT NOT NULL,
                    sources_found INTEGER DEFAULT 0,
                    sources_added INTEGER DEFAULT 0,
                    sources_fetched_successfully INTEGER DEFAULT 0,
                    failure_count INTEGER DEFAULT 0,
                    error TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_sources_project ON discovered_sources(project_id);
                CREATE INDEX IF NOT EXISTS idx_sources_state ON discovered_sources(state);
                CREATE INDEX IF NOT EXISTS idx_texts_source_url ON library_texts(source_url);
                CREATE INDEX IF NOT EXISTS idx_texts_discovered_source ON library_texts(discovered_source_id);
                CREATE INDEX IF NOT EXISTS idx_runs_project ON discovery_runs(project_id);
            """)

    # --- Project Operations ---

    def save_project(self, project: ResearchProject) -> None:
        """Save or update a project."""
        with self._connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO projects (id, title, search_terms, created_at)
                VALUES (?, ?, ?, ?)
            """, (
                project.id, project.title, json.dumps(project.search_terms),
                project.created_at.isoformat()
            ))

    def get_project(self, project_id: str) -> Optional[ResearchProject]:
        """Get a project by ID."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
            if row:
                return ResearchProject(
                    id=row["id"],
                    title=row["title"],
                    search_terms=json.loads(row["search_terms"]) if row["search_terms"] else [],
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
            return None

    # --- Discovered Source Operations ---

    def upsert_source(self, source: DiscoveredSource) -> tuple[DiscoveredSource, bool]:
        """Insert a source or refresh the metadata of the existing (project, url) row."""
        status, detail = state_to_columns(source.state)
        with self._connection() as conn:
            cursor = conn.execute("""
                INSERT INTO discovered_sources
                (id, project_id, url, title, author, source_site, search_term,
                 quality_score, relevance_score, credibility_score, recommendation_tier,
                 content_preview, discovery_date, state, state_detail)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (project_id, url) DO NOTHING
            """, (
                source.id, source.project_id, source.url, source.title, source.author,
                source.source_site, source.search_term,
                source.quality_score, source.relevance_score, source.credibility_score,
                source.recommendation_tier.value, source.content_preview,
                source.discovery_date.isoformat(), status, detail
            ))
            created = cursor.rowcount == 1

            if not created:
                # Identity and state belong to the first insert
                conn.execute("""
                    UPDATE discovered_sources
                    SET quality_score = ?, relevance_score = ?, credibility_score = ?,
                        recommendation_tier = ?,
                        content_preview = COALESCE(NULLIF(?, ''), content_preview)
                    WHERE project_id = ? AND url = ?
                """, (
                    source.quality_score, source.relevance_score, source.credibility_score,
                    source.recommendation_tier.value, source.content_preview,
                    source.project_id, source.url
                ))

            row = conn.execute(
                "SELECT * FROM discovered_sources WHERE project_id = ? AND url = ?",
                (source.project_id, source.url)
            ).fetchone()
            return self._row_to_source(row), created

    def get_source(self, source_id: str) -> Optional[DiscoveredSource]:
        """Get a source by ID."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM discovered_sources WHERE id = ?", (source_id,)
            ).fetchone()
            if row:
                return self._row_to_source(row)
            return None

    def get_sources(self, project_id: str) -> list[DiscoveredSource]:
        """Get a project's sources in discovery order."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM discovered_sources WHERE project_id = ? ORDER BY rowid",
                (project_id,)
            ).fetchall()
            return [self._row_to_source(row) for row in rows]

    def count_sources(self, project_id: str) -> int:
        """Count a project's sources."""
        with self._connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM discovered_sources WHERE project_id = ?",
                (project_id,)
            ).fetchone()[0]

    def mark_ingested(self, source_id: str, text_id: str) -> bool:
        """Move a source to Ingested(text_id) if it is not ingested yet."""
        with self._connection() as conn:
            cursor = conn.execute("""
                UPDATE discovered_sources
                SET state = ?, state_detail = ?
                WHERE id = ? AND state != ?
                  AND EXISTS (
                      SELECT 1 FROM library_texts t
                      WHERE t.id = ? AND t.source_url = discovered_sources.url
                  )
            """, (
                SourceStatus.INGESTED.value, text_id, source_id,
                SourceStatus.INGESTED.value, text_id
            ))
            if cursor.rowcount == 1:
                return True

            row = conn.execute(
                "SELECT state, state_detail FROM discovered_sources WHERE id = ?",
                (source_id,)
            ).fetchone()
            if row is None:
                raise StoreError(f"Unknown discovered source: {source_id}")
            if row["state"] == SourceStatus.INGESTED.value:
                if row["state_detail"] == text_id:
                    return False
                raise IngestionConflict(source_id, row["state_detail"], text_id)
            raise StoreError(
                f"Library text {text_id} does not exist for the url of source {source_id}"
            )

    def set_source_state(self, source_id: str, state: SourceState) -> bool:
        """Record a non-ingested outcome on a source."""
        if isinstance(state, Ingested):
            raise ValueError("Use mark_ingested to ingest a source")
        status, detail = state_to_columns(state)
        with self._connection() as conn:
            cursor = conn.execute("""
                UPDATE discovered_sources SET state = ?, state_detail = ?
                WHERE id = ? AND state != ?
            """, (status, detail, source_id, SourceStatus.INGESTED.value))
            return cursor.rowcount == 1

    def _row_to_source(self, row: sqlite3.Row) -> DiscoveredSource:
        """Convert a database row to a DiscoveredSource object."""
        return DiscoveredSource(
            id=row["id"],
            project_id=row["project_id"],
            url=row["url"],
            title=row["title"] or row["url"],
            author=row["author"] or "Unknown",
            source_site=row["source_site"] or "Web",
            search_term=row["search_term"] or "",
            quality_score=row["quality_score"],
            relevance_score=row["relevance_score"],
            credibility_score=row["credibility_score"],
            recommendation_tier=RecommendationTier(row["recommendation_tier"]),
            content_preview=row["content_preview"] or "",
            discovery_date=datetime.fromisoformat(row["discovery_date"]),
            state=state_from_columns(row["state"], row["state_detail"]),
        )

    # --- Library Text Operations ---

    def add_library_text(self, text: LibraryText) -> None:
        """Insert a library text. Texts are never updated."""
        with self._connection() as conn:
            conn.execute("""
                INSERT INTO library_texts
                (id, title, author, content, source_url, source_site,
                 discovered_via, discovered_source_id, upload_date)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                text.id, text.title, text.author, text.content, text.source_url,
                text.source_site, text.discovered_via, text.discovered_source_id,
                text.upload_date.isoformat()
            ))

    def get_library_text(self, text_id: str) -> Optional[LibraryText]:
        """Get a library text by ID."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM library_texts WHERE id = ?", (text_id,)
            ).fetchone()
            if row:
                return self._row_to_text(row)
            return None

    def get_library_texts_by_url(self, source_url: str) -> list[LibraryText]:
        """Get all library texts fetched from a URL."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM library_texts WHERE source_url = ? ORDER BY upload_date",
                (source_url,)
            ).fetchall()
            return [self._row_to_text(row) for row in rows]

    def find_unlinked_texts(self, project_id: str) -> list[tuple[str, str]]:
        """Find texts whose source row was never marked ingested."""
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT s.id AS source_id, t.id AS text_id
                FROM discovered_sources s
                JOIN library_texts t
                  ON t.discovered_source_id = s.id AND t.source_url = s.url
                WHERE s.project_id = ? AND s.state != ?
                ORDER BY t.upload_date, t.rowid
            """, (project_id, SourceStatus.INGESTED.value)).fetchall()

        # A source is linked to its oldest text
        pairs = []
        seen = set()
        for row in rows:
            if row["source_id"] not in seen:
                seen.add(row["source_id"])
                pairs.append((row["source_id"], row["text_id"]))
        return pairs

    def _row_to_text(self, row: sqlite3.Row) -> LibraryText:
        """Convert a database row to a LibraryText object."""
        return LibraryText(
            id=row["id"],
            title=row["title"],
            author=row["author"] or "Unknown",
            content=row["content"],
            source_url=row["source_url"],
            source_site=row["source_site"] or "Web",
            discovered_via=row["discovered_via"],
            discovered_source_id=row["discovered_source_id"],
            upload_date=datetime.fromisoformat(row["upload_date"]),
        )

    # --- Lease Operations ---

    def acquire_lease(self, project_id: str, holder: str, expires_at: datetime,
                      now: datetime) -> bool:
        """Take the lease if it is free, expired, or already ours."""
        with self._connection() as conn:
            cursor = conn.execute("""
                INSERT INTO run_leases (project_id, holder, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (project_id) DO UPDATE SET
                    holder = excluded.holder,
                    acquired_at = excluded.acquired_at,
                    expires_at = excluded.expires_at
                WHERE run_leases.expires_at <= ? OR run_leases.holder = excluded.holder
            """, (project_id, holder, now.timestamp(), expires_at.timestamp(), now.timestamp()))
            return cursor.rowcount == 1

    def release_lease(self, project_id: str, holder: str) -> bool:
        """Release the lease if we still hold it."""
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM run_leases WHERE project_id = ? AND holder = ?",
                (project_id, holder)
            )
            return cursor.rowcount == 1

    def get_lease(self, project_id: str) -> Optional[dict]:
        """Get the current lease row for a project, expired or not."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM run_leases WHERE project_id = ?", (project_id,)
            ).fetchone()
            if row:
                return {
                    "project_id": row["project_id"],
                    "holder": row["holder"],
                    "acquired_at": datetime.fromtimestamp(row["acquired_at"]),
                    "expires_at": datetime.fromtimestamp(row["expires_at"]),
                }
            return None

    # --- Run History ---

    def save_run(self, run: RunRecord) -> None:
        """Save or update a run record."""
        with self._connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO discovery_runs
                (id, project_id, started_at, finished_at, status, sources_found,
                 sources_added, sources_fetched_successfully, failure_count, error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                run.id, run.project_id, run.started_at.isoformat(),
                run.finished_at.isoformat() if run.finished_at else None,
                run.status, run.sources_found, run.sources_added,
                run.sources_fetched_successfully, run.failure_count, run.error
            ))

    def get_runs(self, project_id: str, limit: int = 10) -> list[RunRecord]:
        """Get a project's most recent runs, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM discovery_runs WHERE project_id = ? "
                "ORDER BY started_at DESC LIMIT ?",
                (project_id, limit)
            ).fetchall()
            return [
                RunRecord(
                    id=row["id"],
                    project_id=row["project_id"],
                    started_at=datetime.fromisoformat(row["started_at"]),
                    finished_at=datetime.fromisoformat(row["finished_at"]) if row["finished_at"] else None,
                    status=row["status"],
                    sources_found=row["sources_found"],
                    sources_added=row["sources_added"],
                    sources_fetched_successfully=row["sources_fetched_successfully"],
                    failure_count=row["failure_count"],
                    error=row["error"],
                )
                for row in rows
            ]

    # --- Statistics ---

    def get_statistics(self) -> dict:
        """Get database statistics."""
        with self._connection() as conn:
            stats = {}

            stats["projects"] = conn.execute(
                "SELECT COUNT(*) FROM projects"
            ).fetchone()[0]

            stats["discovered_sources"] = conn.execute(
                "SELECT COUNT(*) FROM discovered_sources"
            ).fetchone()[0]

            stats["ingested_sources"] = conn.execute(
                "SELECT COUNT(*) FROM discovered_sources WHERE state = ?",
                (SourceStatus.INGESTED.value,)
            ).fetchone()[0]

            stats["library_texts"] = conn.execute(
                "SELECT COUNT(*) FROM library_texts"
            ).fetchone()[0]

            stats["runs"] = conn.execute(
                "SELECT COUNT(*) FROM discovery_runs"
            ).fetchone()[0]

            site_rows = conn.execute("""
                SELECT source_site, COUNT(*) as count
                FROM library_texts
                GROUP BY source_site
                ORDER BY count DESC
                LIMIT 10
            """).fetchall()
            stats["texts_by_site"] = {row["source_site"]: row["count"] for row in site_rows}

            return stats
