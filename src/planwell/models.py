"""
Planwell - Data models.

Shared value types passed between the payment, counting, generation and
coordination layers.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PlanCategory(str, Enum):
    """Kind of plan. Determines payment requirement and prompt content."""

    MEAL = "meal"
    WORKOUT = "workout"
    REHAB = "rehab"

    @classmethod
    def parse(cls, value: "str | PlanCategory") -> "PlanCategory":
        """Parse a category case-insensitively."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentProvider(str, Enum):
    ASAAS = "asaas"
    MERCADOPAGO = "mercadopago"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentIntent(BaseModel):
    """
    A payment request created with a provider.

    Owned by one attempt. Only gateways and the poller change its status.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    external_id: str
    status: PaymentStatus = PaymentStatus.PENDING
    amount: Decimal
    provider: PaymentProvider
    created_at: datetime = Field(default_factory=_utc_now)
    checkout_url: str | None = None
    # Provider-side object behind the intent (e.g. a checkout preference id)
    provider_reference: str | None = None


class GenerationCount(BaseModel):
    """Persisted counter row, one per (user_id, category)."""

    user_id: str
    category: PlanCategory
    count: int = Field(default=0, ge=0)


class GenerationRequest(BaseModel):
    """One call to generate a plan. attempt_id is the unit of idempotency."""

    user_id: str
    category: PlanCategory
    preferences: dict[str, Any] = Field(default_factory=dict)
    attempt_id: str = Field(default_factory=lambda: str(uuid.uuid4()))


class PlanDocument(BaseModel):
    """A parsed plan returned by an AI provider."""

    category: PlanCategory | None = None
    content: dict[str, Any]
    provider: str
    model: str
    generated_at: datetime = Field(default_factory=_utc_now)


class PlanResult(BaseModel):
    """What a successful attempt returns to the caller."""

    attempt_id: str
    plan: PlanDocument
    generation_count: int | None = None
    payment: PaymentIntent | None = None


@dataclass(frozen=True)
class ProviderConfig:
    """Connection details for one OpenAI-compatible chat-completion provider."""

    name: str
    base_url: str
    api_key: str
    model: str
