"""Tests for library ingestion."""

import pytest
from unittest.mock import patch

from scout.src.errors import StoreError
from scout.src.ingest import LibraryIngestor
from scout.src.store.models import DiscoveredSource, Ingested, Pending


@pytest.fixture
def ingestor(db):
    return LibraryIngestor(db)


@pytest.fixture
def source(db, project):
    stored, _ = db.upsert_source(DiscoveredSource.create(
        project_id=project.id,
        url="https://plato.stanford.edu/entries/consciousness/",
        title="Consciousness",
        source_site="Stanford Encyclopedia",
    ))
    return stored


class TestIngest:
    """Tests for LibraryIngestor.ingest()."""

    def test_creates_text_and_marks_source(self, ingestor, db, source):
        text = ingestor.ingest(source, "Full content")

        assert text.source_url == source.url
        assert text.source_site == "Stanford Encyclopedia"
        assert text.discovered_via == "autonomous_research"
        assert text.discovered_source_id == source.id
        assert db.get_library_text(text.id).content == "Full content"
        assert db.get_source(source.id).state == Ingested(text_id=text.id)

    def test_second_ingest_is_noop(self, ingestor, db, source):
        first = ingestor.ingest(source, "Full content")
        second = ingestor.ingest(source, "Different content")

        assert second.id == first.id
        assert len(db.get_library_texts_by_url(source.url)) == 1

    def test_search_title_kept(self, ingestor, source):
        text = ingestor.ingest(source, "Full content", title="Extracted")
        assert text.title == "Consciousness"

    def test_extracted_title_used_when_hit_had_none(self, ingestor, db, project):
        bare, _ = db.upsert_source(DiscoveredSource.create(project_id=project.id, url="https://a.org/x"))
        text = ingestor.ingest(bare, "Full content", title="Extracted")
        assert text.title == "Extracted"

    def test_author_falls_back_to_site(self, ingestor, source):
        assert ingestor.ingest(source, "Full content").author == "Stanford Encyclopedia"

    def test_extracted_author(self, ingestor, source):
        assert ingestor.ingest(source, "Full content", author="Ann Smith").author == "Ann Smith"

    def test_unknown_source(self, ingestor, project):
        ghost = DiscoveredSource.create(project_id=project.id, url="https://ghost.org")
        with pytest.raises(StoreError):
            ingestor.ingest(ghost, "content")


class TestReconcile:
    """Tests for finishing interrupted ingests."""

    def test_mark_failure_leaves_text_unlinked(self, ingestor, db, source):
        with patch.object(db, "mark_ingested", side_effect=StoreError("disk I/O error")):
            with pytest.raises(StoreError):
                ingestor.ingest(source, "Full content")

        assert db.get_source(source.id).state == Pending()
        assert len(db.get_library_texts_by_url(source.url)) == 1

    def test_reconcile_links_orphan(self, ingestor, db, source, project):
        with patch.object(db, "mark_ingested", side_effect=StoreError("disk I/O error")):
            with pytest.raises(StoreError):
                ingestor.ingest(source, "Full content")

        assert ingestor.reconcile(project.id) == 1
        orphan = db.get_library_texts_by_url(source.url)[0]
        assert db.get_source(source.id).state == Ingested(text_id=orphan.id)

        # Nothing left to do
        assert ingestor.reconcile(project.id) == 0

    def test_reconcile_store_failure_is_retried_later(self, ingestor, db, source, project):
        with patch.object(db, "mark_ingested", side_effect=StoreError("disk I/O error")):
            with pytest.raises(StoreError):
                ingestor.ingest(source, "Full content")
            assert ingestor.reconcile(project.id) == 0

        assert ingestor.reconcile(project.id) == 1
