"""
Pytest configuration and fixtures for Planwell tests.

Provides fake clocks, scripted payment gateways and fake AI provider
clients so the orchestration core runs without network or wall-clock
waits.
"""

import asyncio
import os
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

# Set test environment before importing planwell modules
os.environ["PLANWELL_ENV"] = "development"
os.environ["PLANWELL_LOG_PROMPTS"] = "0"

from planwell.db.counter import GenerationCounter, InMemoryCounterStore
from planwell.llm.client import AIGenerationClient
from planwell.models import PaymentIntent, PaymentProvider, PaymentStatus, PlanCategory, ProviderConfig
from planwell.payments.access import SettingsPaymentPolicy


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ScriptedGateway:
    """
    Payment gateway double.

    check_status() returns the scripted statuses in order (repeating the
    last one); an Exception in the script is raised instead.
    """

    provider = PaymentProvider.ASAAS

    def __init__(self, statuses=None, *, create_status=PaymentStatus.PENDING, events=None):
        self.statuses = list(statuses or [PaymentStatus.PENDING])
        self.create_status = create_status
        self.created: list[tuple[str, Decimal, str]] = []
        self.checks: list[str] = []
        self.events = events if events is not None else []

    async def create(self, user_id, amount, description):
        self.created.append((user_id, Decimal(str(amount)), description))
        self.events.append("create")
        return PaymentIntent(
            external_id=f"pay_{len(self.created)}",
            status=self.create_status,
            amount=Decimal(str(amount)),
            provider=self.provider,
            checkout_url="https://pay.test/checkout",
        )

    async def check_status(self, intent_id):
        self.checks.append(intent_id)
        self.events.append("check")
        index = min(len(self.checks), len(self.statuses)) - 1
        status = self.statuses[index]
        if isinstance(status, Exception):
            raise status
        return status


def make_completion(content):
    """Minimal chat-completion response object."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeProviderClients:
    """client_factory for AIGenerationClient: one AsyncMock per provider name."""

    def __init__(self, **responses):
        self.clients: dict[str, SimpleNamespace] = {}
        for name, response in responses.items():
            create = AsyncMock()
            if isinstance(response, Exception):
                create.side_effect = response
            elif callable(response):
                create.side_effect = response
            else:
                create.return_value = make_completion(response)
            self.clients[name] = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    def __call__(self, provider: ProviderConfig):
        return self.clients[provider.name]

    def create_mock(self, name: str) -> AsyncMock:
        return self.clients[name].chat.completions.create


PRIMARY = ProviderConfig(name="primary", base_url="https://primary.test/v1", api_key="pk", model="primary-model")
FALLBACK = ProviderConfig(name="fallback", base_url="https://fallback.test/v1", api_key="fk", model="fallback-model")

SAMPLE_PLAN_JSON = '{"weeklyPlan": {"monday": {"meals": {"breakfast": {"calories": 450}}}}}'


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def counter_store():
    return InMemoryCounterStore()


@pytest.fixture
def counter(counter_store):
    return GenerationCounter(counter_store)


@pytest.fixture
def paid_meal_policy():
    """Only MEAL plans require payment."""
    return SettingsPaymentPolicy([PlanCategory.MEAL], Decimal("19.90"))


@pytest.fixture
def ai_clients():
    return FakeProviderClients(primary=SAMPLE_PLAN_JSON, fallback=SAMPLE_PLAN_JSON)


@pytest.fixture
def ai_client(ai_clients):
    return AIGenerationClient(PRIMARY, FALLBACK, client_factory=ai_clients)


@pytest.fixture
def sample_preferences():
    return {
        "age": 34,
        "weight": 72,
        "height": 178,
        "goal": "lose_weight",
        "dailyCalories": 2100,
        "allergies": ["peanuts"],
    }
