"""
Error taxonomy for the discovery pipeline.

Per-source errors (ProviderError, ContentInsufficient, StoreError) are
recorded in the run summary and never abort a run. ProjectNotFound and
ProviderUnavailable are the only run-level aborts; ConcurrencyConflict is
raised before any work starts.
"""

from typing import Optional


class ScoutError(Exception):
    """Base class for all scout errors."""
    pass


class ProviderError(ScoutError):
    """
    The content provider failed to answer a query or scrape.

    Retryable on a future run.
    """

    def __init__(
        self,
        message: str,
        kind: str = "network",
        retry_after_seconds: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind  # network, timeout, auth, rate_limited, server, bad_response, unreachable
        self.retry_after_seconds = retry_after_seconds


class ProviderUnreachable(ProviderError):
    """Connection-level failure: the provider could not be contacted at all."""

    def __init__(self, message: str):
        super().__init__(message, kind="unreachable")


class ProviderUnavailable(ScoutError):
    """No discovery query reached the provider. Aborts the run."""
    pass


class ContentInsufficient(ScoutError):
    """The provider answered but the content is below the minimum length."""

    def __init__(self, url: str, length: int, minimum: int):
        super().__init__(
            f"Content for {url} is {length} characters, minimum is {minimum}"
        )
        self.url = url
        self.length = length
        self.minimum = minimum


class StoreError(ScoutError):
    """A persistence operation failed."""
    pass


class IngestionConflict(StoreError):
    """A source already ingested as one library text was marked with another."""

    def __init__(self, source_id: str, existing_text_id: str, new_text_id: str):
        super().__init__(
            f"Source {source_id} is already ingested as {existing_text_id}, "
            f"refusing to overwrite with {new_text_id}"
        )
        self.source_id = source_id
        self.existing_text_id = existing_text_id
        self.new_text_id = new_text_id


class ConcurrencyConflict(ScoutError):
    """A discovery run for this project is already in flight."""

    def __init__(self, project_id: str, holder: Optional[str] = None):
        super().__init__(f"A discovery run for project {project_id} is already in progress")
        self.project_id = project_id
        self.holder = holder


class ProjectNotFound(ScoutError):
    """The requested research project does not exist."""

    def __init__(self, project_id: str):
        super().__init__(f"Research project not found: {project_id}")
        self.project_id = project_id
