"""
Planwell Web API - FastAPI application.

Thin HTTP surface over the coordinator. An attempt runs in the
background; clients poll it for progress and may cancel it.

Sessions are identified by the X-Session-Id header. Authentication is
handled upstream; the user id arrives in the request body.
"""

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from planwell import __version__
from planwell.errors import GenerationError
from planwell.generation.coordinator import PlanAttempt, PlanGenerationCoordinator
from planwell.generation.guard import GuardRegistry

logger = logging.getLogger(__name__)

app = FastAPI(title="Planwell", version=__version__)

# In-memory registries (one process serves a session for its lifetime)
guards = GuardRegistry()
attempts: dict[str, PlanAttempt] = {}

_coordinator: PlanGenerationCoordinator | None = None


def get_coordinator() -> PlanGenerationCoordinator:
    """Build the production coordinator on first use."""
    global _coordinator
    if _coordinator is None:
        _coordinator = PlanGenerationCoordinator.from_settings()
    return _coordinator


# =============================================================================
# Models
# =============================================================================

class PlanRequest(BaseModel):
    user_id: str
    category: str
    preferences: dict[str, Any] = Field(default_factory=dict)
    explicit: bool = True
    fallback_enabled: bool | None = None


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}


@app.post("/api/plans", status_code=202)
async def start_plan(
    req: PlanRequest,
    x_session_id: str = Header(...),
    coordinator: PlanGenerationCoordinator = Depends(get_coordinator),
):
    """Start generating a plan for this session."""
    guard = guards.for_session(x_session_id)
    try:
        attempt = coordinator.start(
            req.user_id,
            req.category,
            req.preferences,
            guard=guard,
            explicit=req.explicit,
            fallback_enabled=req.fallback_enabled,
        )
    except GenerationError as e:
        status = 409 if e.stage == "guard_check" else 422
        return JSONResponse(status_code=status, content={"error": e.to_detail()})

    _prune_finished()
    attempts[attempt.attempt_id] = attempt
    return attempt.snapshot()


@app.get("/api/plans/{attempt_id}")
async def get_plan(attempt_id: str):
    """Progress, result or error of an attempt."""
    return _get_attempt(attempt_id).snapshot()


@app.delete("/api/plans/{attempt_id}")
async def cancel_plan(attempt_id: str):
    """Cancel an attempt. Cancelling a finished attempt is a no-op."""
    attempt = _get_attempt(attempt_id)
    attempt.cancel()
    return {"attempt_id": attempt_id, "cancelled": True}


def _get_attempt(attempt_id: str) -> PlanAttempt:
    attempt = attempts.get(attempt_id)
    if attempt is None:
        raise HTTPException(status_code=404, detail="Attempt not found")
    return attempt


MAX_FINISHED_ATTEMPTS = 500
MAX_IDLE_SESSIONS = 500


def _prune_finished() -> None:
    """Keep memory bounded: drop the oldest finished attempts and idle session guards."""
    finished = [key for key, attempt in attempts.items() if attempt.done]
    for key in finished[: max(0, len(finished) - MAX_FINISHED_ATTEMPTS)]:
        attempts.pop(key, None)
    guards.prune(MAX_IDLE_SESSIONS)
