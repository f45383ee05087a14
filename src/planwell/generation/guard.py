"""
Planwell - Generation guard.

At most one generation in flight per session. The guard is a three-state
machine exposed only through try_acquire() / release():

    NOT_STARTED --acquire--> IN_FLIGHT --release--> COMPLETED
    COMPLETED   --acquire (explicit only)--> IN_FLIGHT

Automatic triggers (explicit=False) are refused once the session has
attempted a generation, so a failing attempt is never retried in a loop
behind the user's back.
"""

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from planwell.errors import GenerationInProgress

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    NOT_STARTED = "not_started"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"


class GenerationGuard:
    """Concurrency gate for one user session."""

    def __init__(self, session_id: str = "default"):
        self.session_id = session_id
        self._state = GuardState.NOT_STARTED
        self._lock = threading.Lock()

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def is_generating(self) -> bool:
        return self._state is GuardState.IN_FLIGHT

    @property
    def was_attempted(self) -> bool:
        return self._state is not GuardState.NOT_STARTED

    def try_acquire(self, *, explicit: bool = True) -> bool:
        """Enter IN_FLIGHT. False means the caller must not proceed."""
        with self._lock:
            if self._state is GuardState.IN_FLIGHT:
                logger.info("Session %s: generation already in flight", self.session_id)
                return False
            if self._state is GuardState.COMPLETED and not explicit:
                logger.info("Session %s: already attempted, skipping automatic retry", self.session_id)
                return False
            self._state = GuardState.IN_FLIGHT
            return True

    def release(self) -> None:
        """Leave IN_FLIGHT. Releasing an idle guard does nothing."""
        with self._lock:
            if self._state is GuardState.IN_FLIGHT:
                self._state = GuardState.COMPLETED

    @contextmanager
    def hold(self, *, explicit: bool = True) -> Iterator["GenerationGuard"]:
        """Acquire for the duration of the block; raise if refused."""
        if not self.try_acquire(explicit=explicit):
            raise GenerationInProgress(f"Session {self.session_id} cannot start a generation now")
        try:
            yield self
        finally:
            self.release()


class GuardRegistry:
    """One guard per session id. Guards never leak across sessions."""

    def __init__(self):
        self._guards: dict[str, GenerationGuard] = {}
        self._lock = threading.Lock()

    def for_session(self, session_id: str) -> GenerationGuard:
        with self._lock:
            # Re-insert so iteration order is least recently used first
            guard = self._guards.pop(session_id, None) or GenerationGuard(session_id)
            self._guards[session_id] = guard
            return guard

    def discard(self, session_id: str) -> None:
        """Forget a session (logout / expiry)."""
        with self._lock:
            self._guards.pop(session_id, None)

    def prune(self, max_idle: int) -> int:
        """Drop the oldest idle guards beyond max_idle. Returns how many were dropped."""
        with self._lock:
            idle = [key for key, guard in self._guards.items() if not guard.is_generating]
            stale = idle[: max(0, len(idle) - max_idle)]
            for key in stale:
                del self._guards[key]
        if stale:
            logger.debug("Pruned %d idle session guards", len(stale))
        return len(stale)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._guards

    def __len__(self) -> int:
        return len(self._guards)
