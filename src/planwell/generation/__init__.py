"""Planwell - Generation orchestration (guard, phases, coordinator)."""

from planwell.generation.coordinator import AttemptState, PlanAttempt, PlanGenerationCoordinator
from planwell.generation.guard import GenerationGuard, GuardRegistry, GuardState
from planwell.generation.phases import Phase, PhaseSimulator, PhaseState, phase_for_elapsed

__all__ = [
    "AttemptState",
    "GenerationGuard",
    "GuardRegistry",
    "GuardState",
    "Phase",
    "PhaseSimulator",
    "PhaseState",
    "PlanAttempt",
    "PlanGenerationCoordinator",
    "phase_for_elapsed",
]
