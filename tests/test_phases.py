"""
Tests for the loading-phase simulator.
"""

import asyncio

import pytest

from conftest import FakeClock
from planwell.generation.phases import (
    PHASE_MESSAGES,
    Phase,
    PhaseSimulator,
    phase_for_elapsed,
    phase_message,
)
from planwell.models import PlanCategory


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


class TestPhaseBoundaries:
    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (0, Phase.PREPARING),
            (4.9, Phase.PREPARING),
            (5, Phase.ANALYZING),
            (14, Phase.ANALYZING),
            (15, Phase.GENERATING),
            (29, Phase.GENERATING),
            (30, Phase.FINALIZING),
            (600, Phase.FINALIZING),
        ],
    )
    def test_phase_for_elapsed(self, seconds, expected):
        assert phase_for_elapsed(seconds) is expected

    def test_every_category_has_every_message(self):
        for category in PlanCategory:
            assert set(PHASE_MESSAGES[category]) == set(Phase)

    def test_generic_message(self):
        assert phase_message(Phase.ANALYZING) == "Analyzing..."


class TestPhaseSimulator:
    def test_advance_follows_clock(self):
        clock = FakeClock()
        changes = []
        sim = PhaseSimulator(category=PlanCategory.REHAB, clock=clock, sleep=clock.sleep, on_change=changes.append)

        async def scenario():
            sim.start()
            observed = []
            for t in (4, 5, 15, 30):
                clock.now = t
                observed.append(sim.advance().phase)
            sim.stop()
            return observed

        assert _run(scenario()) == [Phase.PREPARING, Phase.ANALYZING, Phase.GENERATING, Phase.FINALIZING]
        assert [state.phase for state in changes] == [Phase.ANALYZING, Phase.GENERATING, Phase.FINALIZING]
        assert sim.message == PHASE_MESSAGES[PlanCategory.REHAB][Phase.FINALIZING]

    def test_never_regresses(self):
        clock = FakeClock()
        sim = PhaseSimulator(clock=clock, sleep=clock.sleep)

        async def scenario():
            sim.start()
            clock.now = 20
            sim.advance()
            clock.now = 3
            state = sim.advance()
            sim.stop()
            return state

        state = _run(scenario())
        assert state.phase is Phase.GENERATING
        assert state.elapsed_seconds == 20

    def test_ticker_advances_in_background(self):
        clock = FakeClock()
        sim = PhaseSimulator(category=PlanCategory.MEAL, clock=clock, sleep=clock.sleep)

        async def scenario():
            sim.start()
            while clock.now < 16:
                await asyncio.sleep(0)
            sim.stop()
            return sim.state

        state = _run(scenario())
        assert state.phase is Phase.GENERATING
        assert not sim.running

    def test_stop_is_idempotent_and_keeps_state(self):
        clock = FakeClock()
        sim = PhaseSimulator(clock=clock, sleep=clock.sleep)

        async def scenario():
            sim.start()
            clock.now = 6
            sim.advance()
            sim.stop()
            sim.stop()
            clock.now = 40
            for _ in range(5):
                await asyncio.sleep(0)
            return sim.state

        assert _run(scenario()).phase is Phase.ANALYZING

    def test_restart_resets(self):
        clock = FakeClock()
        sim = PhaseSimulator(clock=clock, sleep=clock.sleep)

        async def scenario():
            sim.start()
            clock.now = 31
            sim.advance()
            sim.stop()
            sim.start()
            state = sim.state
            sim.stop()
            return state

        assert _run(scenario()).phase is Phase.PREPARING

    def test_advance_before_start(self):
        sim = PhaseSimulator()
        assert sim.advance().phase is Phase.PREPARING
