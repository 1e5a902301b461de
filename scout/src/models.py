"""Result models returned by the scout API."""

from typing import Literal, Optional
from pydantic import BaseModel, Field

FailureReason = Literal["ProviderError", "ContentInsufficient", "StoreError"]


class SourceFailure(BaseModel):
    """A selected source that was not ingested this run."""
    url: str
    reason: FailureReason
    message: Optional[str] = None  # Error text, for logs and diagnostics

    def to_dict(self) -> dict:
        return {"url": self.url, "reason": self.reason}


class RunSummary(BaseModel):
    """Outcome of one discover-and-ingest run."""
    project_id: str
    run_id: str
    sources_found: int = 0  # New sources recorded this run
    sources_added: int = 0  # Sources on file for the project after the run
    sources_fetched_successfully: int = 0
    failures: list[SourceFailure] = Field(default_factory=list)

    def to_dict(self) -> dict:
        """Wire format used by the HTTP layer."""
        return {
            "sourcesFound": self.sources_found,
            "sourcesAdded": self.sources_added,
            "sourcesFetchedSuccessfully": self.sources_fetched_successfully,
            "failures": [f.to_dict() for f in self.failures],
        }
