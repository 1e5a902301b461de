"""
Data models for the scout store.

Defines the core entities: ResearchProject, DiscoveredSource, LibraryText,
the tagged ingestion state of a source, and run history records.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union
import uuid

DISCOVERED_VIA = "autonomous_research"


class RecommendationTier(str, Enum):
    """Coarse priority bucket used to pick fetch candidates."""
    HIGH = "high_priority"
    MEDIUM = "medium_priority"
    LOW = "low_priority"

    @property
    def rank(self) -> int:
        """Sort key, lower is fetched first."""
        return {"high_priority": 0, "medium_priority": 1, "low_priority": 2}[self.value]


class SourceStatus(str, Enum):
    """Column value for the tagged source state."""
    PENDING = "pending"
    INGESTED = "ingested"
    FAILED = "failed"            # Provider error on the last attempt, retryable
    INSUFFICIENT = "insufficient"  # Content too short on the last attempt


@dataclass(frozen=True)
class Pending:
    """Never fetched successfully, eligible for fetching."""
    status = SourceStatus.PENDING


@dataclass(frozen=True)
class Ingested:
    """Committed to the library as text_id. Terminal."""
    text_id: str
    status = SourceStatus.INGESTED


@dataclass(frozen=True)
class Failed:
    """Last fetch failed at the provider. Still eligible next run."""
    reason: str
    status = SourceStatus.FAILED


@dataclass(frozen=True)
class Insufficient:
    """Last fetch returned too little content. Still eligible next run."""
    length: int
    status = SourceStatus.INSUFFICIENT


SourceState = Union[Pending, Ingested, Failed, Insufficient]


def state_to_columns(state: SourceState) -> tuple[str, Optional[str]]:
    """Split a state into (status, detail) columns."""
    if isinstance(state, Ingested):
        return state.status.value, state.text_id
    if isinstance(state, Failed):
        return state.status.value, state.reason
    if isinstance(state, Insufficient):
        return state.status.value, str(state.length)
    return SourceStatus.PENDING.value, None


def state_from_columns(status: str, detail: Optional[str]) -> SourceState:
    """Rebuild a state from its (status, detail) columns."""
    status = SourceStatus(status)
    if status == SourceStatus.INGESTED:
        return Ingested(text_id=detail)
    if status == SourceStatus.FAILED:
        return Failed(reason=detail or "")
    if status == SourceStatus.INSUFFICIENT:
        return Insufficient(length=int(detail or 0))
    return Pending()


def _new_id() -> str:
    return str(uuid.uuid4())[:12]


@dataclass
class ResearchProject:
    """A research project owned outside the pipeline. Read-only to scout."""
    id: str
    title: str
    search_terms: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        # Ordered set: drop blanks and repeats, keep first occurrence
        seen = set()
        terms = []
        for term in self.search_terms:
            term = term.strip()
            if term and term.lower() not in seen:
                seen.add(term.lower())
                terms.append(term)
        self.search_terms = terms

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "search_terms": list(self.search_terms),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResearchProject":
        return cls(
            id=data["id"],
            title=data["title"],
            search_terms=data.get("search_terms", []),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
        )

    @classmethod
    def create(cls, title: str, search_terms: list[str]) -> "ResearchProject":
        """Create a new project."""
        return cls(id=_new_id(), title=title, search_terms=search_terms)


@dataclass
class DiscoveredSource:
    """A candidate document found for a project, unique per (project_id, url)."""
    id: str
    project_id: str
    url: str
    title: str
    author: str
    source_site: str
    search_term: str

    # Scores, all in [0, 1]
    quality_score: float
    relevance_score: float
    credibility_score: float
    recommendation_tier: RecommendationTier

    content_preview: str
    discovery_date: datetime = field(default_factory=datetime.now)
    state: SourceState = field(default_factory=Pending)

    @property
    def text_added_to_library(self) -> bool:
        return isinstance(self.state, Ingested)

    @property
    def library_text_id(self) -> Optional[str]:
        if isinstance(self.state, Ingested):
            return self.state.text_id
        return None

    @property
    def is_pending(self) -> bool:
        """Eligible for fetching (anything not yet ingested)."""
        return not isinstance(self.state, Ingested)

    def to_dict(self) -> dict:
        status, detail = state_to_columns(self.state)
        return {
            "id": self.id,
            "project_id": self.project_id,
            "url": self.url,
            "title": self.title,
            "author": self.author,
            "source_site": self.source_site,
            "search_term": self.search_term,
            "quality_score": self.quality_score,
            "relevance_score": self.relevance_score,
            "credibility_score": self.credibility_score,
            "recommendation_tier": self.recommendation_tier.value,
            "content_preview": self.content_preview,
            "discovery_date": self.discovery_date.isoformat(),
            "state": status,
            "state_detail": detail,
            "text_added_to_library": self.text_added_to_library,
            "library_text_id": self.library_text_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DiscoveredSource":
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            url=data["url"],
            title=data["title"],
            author=data["author"],
            source_site=data["source_site"],
            search_term=data["search_term"],
            quality_score=data["quality_score"],
            relevance_score=data["relevance_score"],
            credibility_score=data["credibility_score"],
            recommendation_tier=RecommendationTier(data["recommendation_tier"]),
            content_preview=data["content_preview"],
            discovery_date=datetime.fromisoformat(data["discovery_date"]),
            state=state_from_columns(data.get("state", "pending"), data.get("state_detail")),
        )

    @classmethod
    def create(
        cls,
        project_id: str,
        url: str,
        title: str = "",
        author: str = "Unknown",
        source_site: str = "Web",
        search_term: str = "",
        quality_score: float = 0.0,
        relevance_score: float = 0.0,
        credibility_score: float = 0.0,
        recommendation_tier: RecommendationTier = RecommendationTier.LOW,
        content_preview: str = "",
    ) -> "DiscoveredSource":
        """Create a new, pending source."""
        return cls(
            id=_new_id(),
            project_id=project_id,
            url=url,
            title=title or url,
            author=author,
            source_site=source_site,
            search_term=search_term,
            quality_score=quality_score,
            relevance_score=relevance_score,
            credibility_score=credibility_score,
            recommendation_tier=recommendation_tier,
            content_preview=content_preview,
        )


@dataclass
class LibraryText:
    """A text committed to the library. Immutable once created."""
    id: str
    title: str
    author: str
    content: str
    source_url: str
    source_site: str
    discovered_via: str = DISCOVERED_VIA
    discovered_source_id: Optional[str] = None  # Provenance back to the DiscoveredSource
    upload_date: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "content": self.content,
            "source_url": self.source_url,
            "source_site": self.source_site,
            "discovered_via": self.discovered_via,
            "discovered_source_id": self.discovered_source_id,
            "upload_date": self.upload_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LibraryText":
        return cls(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            content=data["content"],
            source_url=data["source_url"],
            source_site=data["source_site"],
            discovered_via=data.get("discovered_via", DISCOVERED_VIA),
            discovered_source_id=data.get("discovered_source_id"),
            upload_date=datetime.fromisoformat(data["upload_date"]),
        )

    @classmethod
    def from_source(cls, source: DiscoveredSource, content: str,
                    title: str = "", author: str = "") -> "LibraryText":
        """Create a library text carrying the provenance of a discovered source."""
        return cls(
            id=_new_id(),
            title=title or source.title,
            author=author or source.author or "Unknown",
            content=content,
            source_url=source.url,
            source_site=source.source_site,
            discovered_source_id=source.id,
        )


@dataclass
class RunRecord:
    """History entry for one discovery run."""
    id: str
    project_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: str = "running"  # running, completed, aborted
    sources_found: int = 0
    sources_added: int = 0
    sources_fetched_successfully: int = 0
    failure_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "status": self.status,
            "sources_found": self.sources_found,
            "sources_added": self.sources_added,
            "sources_fetched_successfully": self.sources_fetched_successfully,
            "failure_count": self.failure_count,
            "error": self.error,
        }

    @classmethod
    def start(cls, project_id: str, run_id: Optional[str] = None) -> "RunRecord":
        """Open a record for a run starting now."""
        return cls(id=run_id or _new_id(), project_id=project_id, started_at=datetime.now())
