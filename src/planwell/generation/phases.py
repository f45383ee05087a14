"""
Planwell - Progress phases.

Cosmetic progress feedback shown while a plan is being generated. The
phase is derived only from wall-clock time since the attempt started:

    PREPARING   [0s, 5s)
    ANALYZING   [5s, 15s)
    GENERATING  [15s, 30s)
    FINALIZING  [30s, ...)

The simulator ticks once per second in its own task. Nothing waits on it;
stop() tears the ticker down the moment generation ends.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from planwell.models import PlanCategory

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    PREPARING = "preparing"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    FINALIZING = "finalizing"


PHASE_ORDER: list[Phase] = [Phase.PREPARING, Phase.ANALYZING, Phase.GENERATING, Phase.FINALIZING]

# Seconds at which each phase begins
PHASE_STARTS: dict[Phase, int] = {
    Phase.PREPARING: 0,
    Phase.ANALYZING: 5,
    Phase.GENERATING: 15,
    Phase.FINALIZING: 30,
}

PHASE_MESSAGES: dict[PlanCategory, dict[Phase, str]] = {
    PlanCategory.MEAL: {
        Phase.PREPARING: "Preparing your meal plan...",
        Phase.ANALYZING: "Analyzing your nutritional needs...",
        Phase.GENERATING: "Putting together your meals for the week...",
        Phase.FINALIZING: "Finalizing your personalized meal plan...",
    },
    PlanCategory.WORKOUT: {
        Phase.PREPARING: "Preparing your workout plan...",
        Phase.ANALYZING: "Analyzing your goals and training level...",
        Phase.GENERATING: "Building your training sessions...",
        Phase.FINALIZING: "Finalizing your personalized workout plan...",
    },
    PlanCategory.REHAB: {
        Phase.PREPARING: "Preparing your rehabilitation plan...",
        Phase.ANALYZING: "Analyzing the best exercises for your condition...",
        Phase.GENERATING: "Generating an optimized exercise sequence...",
        Phase.FINALIZING: "Finalizing your personalized plan...",
    },
}


def phase_for_elapsed(seconds: float) -> Phase:
    """Phase for a given number of elapsed seconds."""
    current = Phase.PREPARING
    for phase in PHASE_ORDER:
        if seconds >= PHASE_STARTS[phase]:
            current = phase
    return current


def phase_message(phase: Phase, category: PlanCategory | None = None) -> str:
    if category is None:
        return f"{phase.value.capitalize()}..."
    return PHASE_MESSAGES[category][phase]


@dataclass(frozen=True)
class PhaseState:
    phase: Phase
    elapsed_seconds: int


class PhaseSimulator:
    """Elapsed-time driven phase state machine with a one-second ticker."""

    def __init__(
        self,
        *,
        category: PlanCategory | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        tick_interval: float = 1.0,
        on_change: Callable[[PhaseState], None] | None = None,
    ):
        self.category = category
        self._clock = clock
        self._sleep = sleep
        self._tick_interval = tick_interval
        self._on_change = on_change
        self._started_at: float | None = None
        self._state = PhaseState(Phase.PREPARING, 0)
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> PhaseState:
        return self._state

    @property
    def message(self) -> str:
        return phase_message(self._state.phase, self.category)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Reset to PREPARING and start ticking. Requires a running loop."""
        if self.running:
            return
        self._started_at = self._clock()
        self._state = PhaseState(Phase.PREPARING, 0)
        self._task = asyncio.create_task(self._tick_loop())

    def stop(self) -> None:
        """Cancel the ticker. The last state stays readable."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def advance(self) -> PhaseState:
        """Recompute the state from the clock. Phases only move forward."""
        if self._started_at is None:
            return self._state

        elapsed = max(int(self._clock() - self._started_at), self._state.elapsed_seconds)
        phase = phase_for_elapsed(elapsed)
        if PHASE_ORDER.index(phase) < PHASE_ORDER.index(self._state.phase):
            phase = self._state.phase

        changed = phase is not self._state.phase
        self._state = PhaseState(phase, elapsed)
        if changed:
            logger.debug("Phase -> %s at %ds", phase.value, elapsed)
            if self._on_change:
                self._on_change(self._state)
        return self._state

    async def _tick_loop(self) -> None:
        while True:
            await self._sleep(self._tick_interval)
            self.advance()
