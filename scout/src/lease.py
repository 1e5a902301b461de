"""
Per-project run lock.

A lease row in the store marks a project as having a discovery run in
flight. Leases expire after a TTL so a crashed run cannot block the project
forever.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

from shared.logging import get_logger

from .errors import ConcurrencyConflict
from .store.base import ResearchStore

log = get_logger("scout", "lease")


class ProjectRunLock:
    """Single-flight guard for discovery runs, one lease per project."""

    def __init__(
        self,
        store: ResearchStore,
        ttl_seconds: float = 900,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize lock.

        Args:
            store: Store holding the lease rows
            ttl_seconds: Lease lifetime; an expired lease may be taken over
            clock: Source of the current time
        """
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def acquire(self, project_id: str, holder: str) -> None:
        """
        Take the project's lease.

        Raises:
            ConcurrencyConflict: another holder has a live lease
        """
        now = self._clock()
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        if not self.store.acquire_lease(project_id, holder, expires_at, now):
            current = self.store.get_lease(project_id)
            other = current["holder"] if current else None
            log.warning("lease.conflict", project_id=project_id, holder=other)
            raise ConcurrencyConflict(project_id, holder=other)
        log.debug("lease.acquired", project_id=project_id, holder=holder)

    def release(self, project_id: str, holder: str) -> bool:
        """Release the lease if this holder still owns it."""
        released = self.store.release_lease(project_id, holder)
        if not released:
            log.warning("lease.release.not_held", project_id=project_id, holder=holder)
        return released

    def is_held(self, project_id: str) -> bool:
        """Whether a live lease exists for the project."""
        current = self.store.get_lease(project_id)
        return current is not None and current["expires_at"] > self._clock()

    @contextmanager
    def hold(self, project_id: str, holder: Optional[str] = None):
        """
        Hold the lease for the duration of a block.

        Yields:
            The holder id
        """
        holder = holder or uuid.uuid4().hex[:12]
        self.acquire(project_id, holder)
        try:
            yield holder
        finally:
            self.release(project_id, holder)
