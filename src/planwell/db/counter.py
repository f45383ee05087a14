"""
Planwell - Generation counter.

Persisted per-user, per-category count of successful plan generations.

Increments are a single atomic upsert-and-increment at the storage layer
(see migrations/001_generation_counts.sql), never read-then-write from
here, so duplicate tabs cannot lose updates. Each increment may carry the
attempt id that produced it; an attempt is counted at most once.

The count is an engagement signal. A failed increment is logged and never
undoes a plan that was already delivered.
"""

import asyncio
import logging
import threading
from typing import Any, Protocol, runtime_checkable

from planwell.models import GenerationCount, PlanCategory

logger = logging.getLogger(__name__)

INCREMENT_FUNCTION = "increment_generation_count"
COUNTS_TABLE = "generation_counts"


@runtime_checkable
class CounterStore(Protocol):
    """Storage backend for generation counts."""

    async def increment(self, user_id: str, category: PlanCategory, attempt_id: str | None = None) -> int:
        """Atomically insert count=1 or add one; return the new count."""
        ...

    async def get(self, user_id: str, category: PlanCategory) -> int | None:
        """Current count, or None when no row exists."""
        ...


class InMemoryCounterStore:
    """Process-local store. Used in tests and the development CLI."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: dict[tuple[str, PlanCategory], int] = {}
        self._attempts: set[str] = set()

    async def increment(self, user_id: str, category: PlanCategory, attempt_id: str | None = None) -> int:
        key = (user_id, category)
        with self._lock:
            if attempt_id is not None and attempt_id in self._attempts:
                return self._counts.get(key, 0)
            if attempt_id is not None:
                self._attempts.add(attempt_id)
            self._counts[key] = self._counts.get(key, 0) + 1
            return self._counts[key]

    async def get(self, user_id: str, category: PlanCategory) -> int | None:
        with self._lock:
            return self._counts.get((user_id, category))


class SupabaseCounterStore:
    """Counts stored in Supabase, incremented through a database function."""

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            from planwell.db.client import get_client
            self._client = get_client()
        return self._client

    async def increment(self, user_id: str, category: PlanCategory, attempt_id: str | None = None) -> int:
        params = {
            "p_user_id": user_id,
            "p_category": category.value,
            "p_attempt_id": attempt_id,
        }
        response = await asyncio.to_thread(
            lambda: self.client.rpc(INCREMENT_FUNCTION, params).execute()
        )
        return _coerce_count(response.data)

    async def get(self, user_id: str, category: PlanCategory) -> int | None:
        response = await asyncio.to_thread(
            lambda: self.client.table(COUNTS_TABLE)
            .select("count")
            .eq("user_id", user_id)
            .eq("category", category.value)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return int(response.data[0]["count"])


def _coerce_count(data: Any) -> int:
    """The RPC may come back as a scalar, a row, or a list of rows."""
    if isinstance(data, list):
        if not data:
            raise ValueError(f"{INCREMENT_FUNCTION} returned no rows")
        data = data[0]
    if isinstance(data, dict):
        data = data.get("count", data.get(INCREMENT_FUNCTION))
    return int(data)


class GenerationCounter:
    """Read-or-create counter over a CounterStore."""

    def __init__(self, store: CounterStore):
        self.store = store

    async def increment(self, user_id: str, category: PlanCategory, *, attempt_id: str | None = None) -> int:
        """Record one successful generation. Returns the new count."""
        count = await self.store.increment(user_id, category, attempt_id)
        logger.info("Generation count for user=%s %s is now %d", user_id, category.value, count)
        return count

    async def increment_safely(
        self, user_id: str, category: PlanCategory, *, attempt_id: str | None = None
    ) -> int | None:
        """increment(), but a storage failure is logged and yields None."""
        try:
            return await self.increment(user_id, category, attempt_id=attempt_id)
        except Exception:
            logger.exception(
                "Failed to increment generation count for user=%s %s (attempt %s)",
                user_id,
                category.value,
                attempt_id,
            )
            return None

    async def get(self, user_id: str, category: PlanCategory) -> GenerationCount:
        count = await self.store.get(user_id, category)
        return GenerationCount(user_id=user_id, category=category, count=count or 0)
