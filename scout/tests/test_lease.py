"""Tests for the per-project run lock."""

import pytest
from datetime import datetime, timedelta

from scout.src.errors import ConcurrencyConflict
from scout.src.lease import ProjectRunLock


class FakeClock:
    """Settable clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 0))


@pytest.fixture
def lock(db, clock):
    return ProjectRunLock(db, ttl_seconds=900, clock=clock)


class TestAcquire:
    """Tests for acquire() and release()."""

    def test_second_holder_conflicts(self, lock):
        lock.acquire("p", "run-1")
        with pytest.raises(ConcurrencyConflict) as exc_info:
            lock.acquire("p", "run-2")
        assert exc_info.value.project_id == "p"
        assert exc_info.value.holder == "run-1"

    def test_release_frees_project(self, lock):
        lock.acquire("p", "run-1")
        assert lock.release("p", "run-1") is True
        lock.acquire("p", "run-2")

    def test_expired_lease_taken_over(self, lock, clock):
        lock.acquire("p", "run-1")
        clock.now += timedelta(seconds=901)
        lock.acquire("p", "run-2")
        assert lock.release("p", "run-1") is False

    def test_other_projects_unaffected(self, lock):
        lock.acquire("p1", "run-1")
        lock.acquire("p2", "run-2")

    def test_is_held(self, lock, clock):
        assert lock.is_held("p") is False
        lock.acquire("p", "run-1")
        assert lock.is_held("p") is True
        clock.now += timedelta(hours=1)
        assert lock.is_held("p") is False


class TestHold:
    """Tests for the hold() context manager."""

    def test_releases_on_exit(self, lock):
        with lock.hold("p") as holder:
            assert lock.is_held("p")
            assert holder
        assert not lock.is_held("p")

    def test_releases_on_error(self, lock):
        with pytest.raises(RuntimeError):
            with lock.hold("p"):
                raise RuntimeError("boom")
        assert not lock.is_held("p")

    def test_conflict_does_not_release_other_holder(self, lock):
        with lock.hold("p", holder="run-1"):
            with pytest.raises(ConcurrencyConflict):
                with lock.hold("p", holder="run-2"):
                    pass
            assert lock.is_held("p")
