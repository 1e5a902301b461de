"""
Source discovery.

Runs one provider query per project search term and merges the hits into a
single url-deduplicated list.
"""

import asyncio
from dataclasses import replace
from typing import Optional

from shared.logging import get_logger

from ..errors import ProviderError, ProviderUnreachable, ProviderUnavailable
from ..store.models import ResearchProject
from .provider import ContentProvider, SearchHit

log = get_logger("scout", "discoverer")


class SourceDiscoverer:
    """
    Finds candidate documents for a project.

    Queries run concurrently. A failing query is logged and skipped so the
    other terms still contribute hits.
    """

    def __init__(
        self,
        provider: ContentProvider,
        max_search_terms: int = 5,
        max_in_flight: int = 3,
    ):
        """
        Initialize discoverer.

        Args:
            provider: Search capability
            max_search_terms: Terms queried per run, in project order
            max_in_flight: Concurrent queries
        """
        self.provider = provider
        self.max_search_terms = max_search_terms
        self.max_in_flight = max_in_flight

    async def discover(self, project: ResearchProject, limit: int = 5) -> list[SearchHit]:
        """
        Discover sources for a project.

        Args:
            project: Project whose search terms drive the queries
            limit: Hits requested per term

        Returns:
            Hits deduplicated by url; the first term to find a url keeps it

        Raises:
            ProviderUnavailable: no query succeeded and the provider could
                not be contacted for any of them
        """
        terms = project.search_terms[:self.max_search_terms]
        if len(project.search_terms) > len(terms):
            log.info(
                "discoverer.terms.capped",
                project_id=project.id,
                total=len(project.search_terms),
                used=len(terms),
            )
        if not terms:
            log.warning("discoverer.no_search_terms", project_id=project.id)
            return []

        semaphore = asyncio.Semaphore(self.max_in_flight)
        results = await asyncio.gather(
            *(self._query(semaphore, term, limit) for term in terms)
        )

        hits: list[SearchHit] = []
        seen: set[str] = set()
        errors: list[ProviderError] = []
        succeeded = 0

        # gather keeps term order, so first-term-wins is deterministic
        for term, (term_hits, error) in zip(terms, results):
            if error is not None:
                errors.append(error)
                continue
            succeeded += 1
            for hit in term_hits:
                if hit.url in seen:
                    continue
                seen.add(hit.url)
                hits.append(replace(hit, search_term=term))

        if succeeded == 0 and errors and all(isinstance(e, ProviderUnreachable) for e in errors):
            log.error("discoverer.provider_unavailable", project_id=project.id, error=str(errors[0]))
            raise ProviderUnavailable(f"Content provider unreachable: {errors[0]}")

        log.info(
            "discoverer.complete",
            project_id=project.id,
            terms=len(terms),
            failed_terms=len(errors),
            hits=len(hits),
        )
        return hits

    async def _query(
        self,
        semaphore: asyncio.Semaphore,
        term: str,
        limit: int,
    ) -> tuple[list[SearchHit], Optional[ProviderError]]:
        """Run one query, returning its error instead of raising."""
        async with semaphore:
            try:
                hits = await self.provider.query(term, limit)
            except ProviderError as e:
                log.warning("discoverer.query.failed", term=term, kind=e.kind, error=str(e))
                return [], e

        log.debug("discoverer.query.complete", term=term, hits=len(hits))
        return hits, None
