"""
Tests for the per-session generation guard.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from planwell.errors import GenerationInProgress
from planwell.generation.guard import GenerationGuard, GuardRegistry, GuardState


class TestGenerationGuard:
    def test_second_acquire_refused_until_release(self):
        guard = GenerationGuard("s-1")

        assert guard.try_acquire() is True
        assert guard.is_generating
        assert guard.try_acquire() is False

        guard.release()
        assert guard.state is GuardState.COMPLETED
        assert guard.try_acquire() is True

    def test_release_when_idle_is_noop(self):
        guard = GenerationGuard()
        guard.release()
        assert guard.state is GuardState.NOT_STARTED
        assert not guard.was_attempted

    def test_automatic_trigger_refused_after_attempt(self):
        guard = GenerationGuard()
        assert guard.try_acquire(explicit=False) is True
        guard.release()

        assert guard.try_acquire(explicit=False) is False
        assert guard.state is GuardState.COMPLETED
        assert guard.try_acquire(explicit=True) is True

    def test_only_one_thread_wins(self):
        guard = GenerationGuard()
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: guard.try_acquire(), range(64)))
        assert results.count(True) == 1

    def test_hold_releases_on_error(self):
        guard = GenerationGuard()
        with pytest.raises(KeyError):
            with guard.hold():
                assert guard.is_generating
                raise KeyError("boom")
        assert guard.state is GuardState.COMPLETED

    def test_hold_refused(self):
        guard = GenerationGuard("busy")
        guard.try_acquire()
        with pytest.raises(GenerationInProgress):
            with guard.hold():
                pass
        assert guard.is_generating


class TestGuardRegistry:
    def test_same_session_same_guard(self):
        registry = GuardRegistry()
        assert registry.for_session("a") is registry.for_session("a")

    def test_sessions_are_isolated(self):
        registry = GuardRegistry()
        assert registry.for_session("a").try_acquire()
        assert registry.for_session("b").try_acquire()
        assert not registry.for_session("a").try_acquire()

    def test_discard_forgets_session(self):
        registry = GuardRegistry()
        registry.for_session("a").try_acquire()
        registry.discard("a")
        registry.discard("never-seen")
        assert registry.for_session("a").state is GuardState.NOT_STARTED

    def test_prune_drops_oldest_idle_guards(self):
        registry = GuardRegistry()
        for session in ("a", "b", "c", "d"):
            registry.for_session(session)
        registry.for_session("a").try_acquire()
        registry.for_session("b")

        assert registry.prune(max_idle=1) == 2

        # "a" is in flight, "b" was used most recently
        assert "a" in registry
        assert "b" in registry
        assert "c" not in registry
        assert "d" not in registry
        assert len(registry) == 2

    def test_prune_never_drops_in_flight(self):
        registry = GuardRegistry()
        registry.for_session("a").try_acquire()
        assert registry.prune(max_idle=0) == 0
        assert registry.for_session("a").is_generating
