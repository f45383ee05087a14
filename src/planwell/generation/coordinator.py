"""
Planwell - Plan generation coordinator.

Composes guard, payment, AI generation and counting into one attempt:

    IDLE -> GUARD_CHECK -> (PAYMENT_PENDING -> PAYMENT_POLLING)?
         -> GENERATING -> COUNTING -> DONE

Any state can move to FAILED. Payment states are skipped when the
category needs no payment for this user. No AI call is made before the
payment is CONFIRMED: generation simply follows polling in the same flow.

Each attempt runs in its own task. The session guard is released by a
done-callback on that task, so success, error and cancellation (even
before the task first runs) all free the session.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable

from planwell.db.counter import GenerationCounter
from planwell.errors import (
    GenerationCancelled,
    GenerationError,
    GenerationInProgress,
    PaymentFailed,
    PaymentTimedOut,
    PlanwellError,
    ValidationError,
)
from planwell.generation.guard import GenerationGuard
from planwell.generation.phases import PhaseSimulator
from planwell.generation.prompts import build_messages
from planwell.llm.client import AIGenerationClient, GenerationContext
from planwell.models import GenerationRequest, PaymentIntent, PaymentStatus, PlanCategory, PlanResult
from planwell.payments.access import PaymentPolicy, plan_description
from planwell.payments.gateway import PaymentGateway
from planwell.payments.poller import PaymentPoller, PollOutcome

logger = logging.getLogger(__name__)


class AttemptState(str, Enum):
    IDLE = "idle"
    GUARD_CHECK = "guard_check"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_POLLING = "payment_polling"
    GENERATING = "generating"
    COUNTING = "counting"
    DONE = "done"
    FAILED = "failed"


class PlanAttempt:
    """Handle to one attempt: progress, outcome and cancellation."""

    def __init__(self, request: GenerationRequest, phases: PhaseSimulator):
        self.request = request
        self.phases = phases
        self.state = AttemptState.IDLE
        self.payment: PaymentIntent | None = None
        self.result: PlanResult | None = None
        self.error: GenerationError | None = None
        self._task: asyncio.Task | None = None

    @property
    def attempt_id(self) -> str:
        return self.request.attempt_id

    @property
    def done(self) -> bool:
        return self.state in (AttemptState.DONE, AttemptState.FAILED)

    def cancel(self) -> None:
        """Abort the attempt. Idempotent; a finished attempt is left alone."""
        if self._task is not None and not self._task.done():
            logger.info("Cancelling attempt %s in state %s", self.attempt_id, self.state.value)
            self._task.cancel()

    async def wait(self) -> PlanResult:
        """Wait for the outcome. Raises GenerationError on any failure."""
        try:
            return await self._task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            if self.error is None:
                self._fail(GenerationError(self.state.value, GenerationCancelled("Attempt cancelled"), attempt_id=self.attempt_id))
            raise self.error from None

    def _fail(self, error: GenerationError) -> GenerationError:
        self.error = error
        self.state = AttemptState.FAILED
        return error

    def snapshot(self) -> dict[str, Any]:
        """Progress view for callers polling the attempt."""
        phase = self.phases.state
        data: dict[str, Any] = {
            "attempt_id": self.attempt_id,
            "category": self.request.category.value,
            "state": self.state.value,
            "phase": phase.phase.value,
            "elapsed_seconds": phase.elapsed_seconds,
            "message": self.phases.message,
        }
        if self.payment is not None:
            data["payment"] = {
                "id": self.payment.external_id,
                "status": self.payment.status.value,
                "amount": str(self.payment.amount),
                "checkout_url": self.payment.checkout_url,
            }
        if self.result is not None:
            data["result"] = self.result.model_dump(mode="json")
        if self.error is not None:
            data["error"] = self.error.to_detail()
        return data


class PlanGenerationCoordinator:
    """End-to-end pay -> confirm -> generate -> count flow."""

    def __init__(
        self,
        *,
        gateway: PaymentGateway,
        counter: GenerationCounter,
        ai_client: AIGenerationClient,
        payment_policy: PaymentPolicy,
        poll_interval: float = 5.0,
        poll_max_duration: float = 600.0,
        fallback_enabled: bool = True,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.counter = counter
        self.ai_client = ai_client
        self.payment_policy = payment_policy
        self.poll_interval = poll_interval
        self.poll_max_duration = poll_max_duration
        self.fallback_enabled = fallback_enabled
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> "PlanGenerationCoordinator":
        """Wire the Supabase-backed production stack."""
        if settings is None:
            from planwell.config import get_settings
            settings = get_settings()

        from planwell.db.counter import SupabaseCounterStore
        from planwell.payments import get_payment_gateway
        from planwell.payments.access import SupabasePaymentPolicy

        components: dict[str, Any] = {
            "gateway": get_payment_gateway(settings=settings),
            "counter": GenerationCounter(SupabaseCounterStore()),
            "ai_client": AIGenerationClient.from_settings(settings),
            "payment_policy": SupabasePaymentPolicy(default_price=settings.default_plan_price),
            "poll_interval": settings.payment_poll_interval_seconds,
            "poll_max_duration": settings.payment_poll_max_seconds,
            "fallback_enabled": settings.ai_fallback_enabled,
            "temperature": settings.ai_temperature,
            "max_tokens": settings.ai_max_tokens,
        }
        components.update(overrides)
        return cls(**components)

    # ------------------------------------------------------------------
    # Caller-facing API
    # ------------------------------------------------------------------

    def start(
        self,
        user_id: str,
        category: PlanCategory | str,
        preferences: dict[str, Any] | None = None,
        *,
        guard: GenerationGuard,
        explicit: bool = True,
        fallback_enabled: bool | None = None,
    ) -> PlanAttempt:
        """
        Begin an attempt in the background and return its handle.

        Raises GenerationError right away for invalid input or when the
        session guard refuses; nothing has been acquired in those cases.
        Must be called from a running event loop (RuntimeError otherwise).
        """
        # Without a loop, fail before the guard is taken
        asyncio.get_running_loop()

        request = _build_request(user_id, category, preferences)
        phases = PhaseSimulator(category=request.category, clock=self._clock, sleep=self._sleep)
        attempt = PlanAttempt(request, phases)

        attempt.state = AttemptState.GUARD_CHECK
        if not guard.try_acquire(explicit=explicit):
            raise attempt._fail(GenerationError(
                AttemptState.GUARD_CHECK.value,
                GenerationInProgress(f"Session {guard.session_id} already generating"),
                attempt_id=request.attempt_id,
            ))

        use_fallback = self.fallback_enabled if fallback_enabled is None else fallback_enabled
        task = asyncio.create_task(self._run(attempt, use_fallback))

        def _finish(_task: asyncio.Task) -> None:
            attempt.phases.stop()
            guard.release()
            if not _task.cancelled():
                # Failures are kept on the attempt; mark them retrieved
                _task.exception()
            elif attempt.error is None:
                attempt._fail(GenerationError(
                    attempt.state.value,
                    GenerationCancelled("Attempt cancelled"),
                    attempt_id=request.attempt_id,
                ))

        task.add_done_callback(_finish)
        attempt._task = task
        logger.info("Attempt %s started: user=%s %s", request.attempt_id, request.user_id, request.category.value)
        return attempt

    async def request_plan(
        self,
        user_id: str,
        category: PlanCategory | str,
        preferences: dict[str, Any] | None = None,
        *,
        guard: GenerationGuard,
        explicit: bool = True,
        fallback_enabled: bool | None = None,
    ) -> PlanResult:
        """Run one attempt to completion. Raises GenerationError on failure."""
        attempt = self.start(
            user_id,
            category,
            preferences,
            guard=guard,
            explicit=explicit,
            fallback_enabled=fallback_enabled,
        )
        return await attempt.wait()

    # ------------------------------------------------------------------
    # Flow
    # ------------------------------------------------------------------

    async def _run(self, attempt: PlanAttempt, fallback_enabled: bool) -> PlanResult:
        request = attempt.request
        try:
            if await self.payment_policy.requires_payment(request.user_id, request.category):
                await self._collect_payment(attempt)

            attempt.state = AttemptState.GENERATING
            attempt.phases.start()
            try:
                plan = await self.ai_client.generate(
                    build_messages(request.category, request.preferences),
                    GenerationContext(
                        fallback_enabled=fallback_enabled,
                        temperature=self.temperature,
                        max_tokens=self.max_tokens,
                        category=request.category,
                        attempt_id=request.attempt_id,
                    ),
                )
            finally:
                attempt.phases.stop()

            attempt.state = AttemptState.COUNTING
            count = await self.counter.increment_safely(
                request.user_id, request.category, attempt_id=request.attempt_id
            )

            attempt.result = PlanResult(
                attempt_id=request.attempt_id,
                plan=plan,
                generation_count=count,
                payment=attempt.payment,
            )
            attempt.state = AttemptState.DONE
            logger.info("Attempt %s done (count=%s)", request.attempt_id, count)
            return attempt.result

        except asyncio.CancelledError:
            logger.info("Attempt %s cancelled in state %s", request.attempt_id, attempt.state.value)
            attempt._fail(GenerationError(
                attempt.state.value,
                GenerationCancelled("Attempt cancelled"),
                attempt_id=request.attempt_id,
            ))
            raise
        except PlanwellError as e:
            logger.warning("Attempt %s failed in state %s: %s", request.attempt_id, attempt.state.value, e)
            raise attempt._fail(GenerationError(attempt.state.value, e, attempt_id=request.attempt_id)) from e
        except Exception as e:
            logger.exception("Attempt %s crashed in state %s", request.attempt_id, attempt.state.value)
            cause = PlanwellError(f"Unexpected error: {e}", action="retry")
            raise attempt._fail(GenerationError(attempt.state.value, cause, attempt_id=request.attempt_id)) from e

    async def _collect_payment(self, attempt: PlanAttempt) -> None:
        request = attempt.request

        attempt.state = AttemptState.PAYMENT_PENDING
        amount = await self.payment_policy.price_for(request.category)
        intent = await self.gateway.create(request.user_id, amount, plan_description(request.category))
        attempt.payment = intent
        await self.payment_policy.record_intent(request.user_id, request.category, intent)

        if intent.status is PaymentStatus.CONFIRMED:
            outcome = PollOutcome.CONFIRMED
        else:
            attempt.state = AttemptState.PAYMENT_POLLING
            poller = PaymentPoller(
                self.gateway,
                interval=self.poll_interval,
                max_duration=self.poll_max_duration,
                clock=self._clock,
                sleep=self._sleep,
            )
            result = await poller.poll(intent.external_id)
            outcome = result.outcome
            intent.status = result.status

        if outcome is PollOutcome.TIMED_OUT:
            raise PaymentTimedOut(f"Payment {intent.external_id} not confirmed in time")
        if outcome is PollOutcome.FAILED:
            raise PaymentFailed(f"Payment {intent.external_id} ended as {intent.status.value}", status=intent.status.value)
        if outcome is PollOutcome.CANCELLED:
            raise GenerationCancelled(f"Polling for payment {intent.external_id} was cancelled")

        intent.status = PaymentStatus.CONFIRMED
        try:
            await self.payment_policy.record_confirmed(request.user_id, request.category, intent)
        except Exception:
            logger.exception("Failed to record confirmed payment %s", intent.external_id)


def _build_request(user_id: str, category: PlanCategory | str, preferences: dict[str, Any] | None) -> GenerationRequest:
    try:
        if not user_id or not str(user_id).strip():
            raise ValidationError("User id is required", field="user_id")
        try:
            parsed = PlanCategory.parse(category)
        except ValueError as e:
            raise ValidationError(f"Unknown plan category: {category!r}", field="category") from e
        if preferences is not None and not isinstance(preferences, dict):
            raise ValidationError("Preferences must be an object", field="preferences")
    except ValidationError as e:
        raise GenerationError(AttemptState.IDLE.value, e) from e
    return GenerationRequest(user_id=str(user_id), category=parsed, preferences=preferences or {})
