"""
Planwell - Payment confirmation poller.

Checks a payment's status on a fixed interval until it reaches a terminal
status or the polling budget runs out. Transient provider errors during a
tick are logged and treated as "still pending" so a flaky provider does
not abandon a payment the user may already have made.

The loop runs in its own task. cancel() stops it at any point and is a
no-op when nothing is running.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from planwell.errors import NetworkError, ProviderError
from planwell.models import PaymentStatus
from planwell.payments.gateway import PaymentGateway

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0
DEFAULT_MAX_DURATION_SECONDS = 600.0

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class PollOutcome(str, Enum):
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollResult:
    outcome: PollOutcome
    status: PaymentStatus
    ticks: int
    elapsed_seconds: float


class PaymentPoller:
    """Bounded-duration polling loop over PaymentGateway.check_status."""

    def __init__(
        self,
        gateway: PaymentGateway,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_duration: float = DEFAULT_MAX_DURATION_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        on_tick: Callable[[int, PaymentStatus], None] | None = None,
    ):
        self.gateway = gateway
        self.interval = interval
        self.max_duration = max_duration
        self._clock = clock
        self._sleep = sleep
        self._on_tick = on_tick
        self._task: asyncio.Task | None = None
        self._cancel_requested = False
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll(
        self,
        intent_id: str,
        interval: float | None = None,
        max_duration: float | None = None,
    ) -> PollResult:
        """
        Poll until CONFIRMED, FAILED/EXPIRED, timeout or cancel().

        Returns a PollResult; never raises for provider or network errors.
        Cancelling the awaiting task cancels the loop as well.
        """
        if self.running:
            raise RuntimeError("Poller is already running")

        interval = self.interval if interval is None else interval
        max_duration = self.max_duration if max_duration is None else max_duration
        if interval <= 0:
            raise ValueError("interval must be positive")

        self._cancel_requested = False
        self.ticks = 0
        self._task = asyncio.create_task(self._run(intent_id, interval, max_duration))
        try:
            return await self._task
        finally:
            if not self._task.done():
                self._task.cancel()

    def cancel(self) -> None:
        """Stop polling. Safe to call at any time, any number of times."""
        if not self.running:
            return
        self._cancel_requested = True
        self._task.cancel()

    async def _run(self, intent_id: str, interval: float, max_duration: float) -> PollResult:
        start = self._clock()
        status = PaymentStatus.PENDING

        def result(outcome: PollOutcome) -> PollResult:
            return PollResult(outcome, status, self.ticks, self._clock() - start)

        try:
            while True:
                remaining = max_duration - (self._clock() - start)
                if remaining <= 0:
                    break
                await self._sleep(min(interval, remaining))
                if self._clock() - start >= max_duration:
                    break

                self.ticks += 1
                try:
                    status = await self.gateway.check_status(intent_id)
                except (ProviderError, NetworkError) as e:
                    logger.warning("Payment %s tick %d failed, still pending: %s", intent_id, self.ticks, e)
                    continue

                if self._on_tick:
                    self._on_tick(self.ticks, status)

                if status is PaymentStatus.CONFIRMED:
                    logger.info("Payment %s confirmed after %d checks", intent_id, self.ticks)
                    return result(PollOutcome.CONFIRMED)
                if status.is_terminal:
                    logger.info("Payment %s ended as %s after %d checks", intent_id, status.value, self.ticks)
                    return result(PollOutcome.FAILED)
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            logger.info("Payment %s polling cancelled after %d checks", intent_id, self.ticks)
            return result(PollOutcome.CANCELLED)

        logger.info("Payment %s not confirmed within %.0fs", intent_id, max_duration)
        return result(PollOutcome.TIMED_OUT)
