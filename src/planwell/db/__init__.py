"""Planwell - Persistence (Supabase client, generation counters)."""

from planwell.db.counter import (
    CounterStore,
    GenerationCounter,
    InMemoryCounterStore,
    SupabaseCounterStore,
)

__all__ = [
    "CounterStore",
    "GenerationCounter",
    "InMemoryCounterStore",
    "SupabaseCounterStore",
]
