"""
Planwell - Payment requirement policy.

Decides whether a plan category needs payment for a given user, at what
price, and records payments once they exist.

Two policies:
- SettingsPaymentPolicy: static, from PAID_CATEGORIES / DEFAULT_PLAN_PRICE
- SupabasePaymentPolicy: per-category pricing in `payment_settings` and
  per-user exemptions in `plan_access`, with payments kept in `payments`
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Protocol, runtime_checkable

from planwell.models import PaymentIntent, PlanCategory

logger = logging.getLogger(__name__)

# Plan type names used by the payment tables
PLAN_TYPES: dict[PlanCategory, str] = {
    PlanCategory.MEAL: "nutrition",
    PlanCategory.WORKOUT: "workout",
    PlanCategory.REHAB: "rehabilitation",
}

PLAN_DESCRIPTIONS: dict[PlanCategory, str] = {
    PlanCategory.MEAL: "Personalized meal plan",
    PlanCategory.WORKOUT: "Personalized workout plan",
    PlanCategory.REHAB: "Personalized rehabilitation plan",
}


def plan_description(category: PlanCategory) -> str:
    return PLAN_DESCRIPTIONS[category]


@runtime_checkable
class PaymentPolicy(Protocol):
    async def requires_payment(self, user_id: str, category: PlanCategory) -> bool:
        ...

    async def price_for(self, category: PlanCategory) -> Decimal:
        ...

    async def record_intent(self, user_id: str, category: PlanCategory, intent: PaymentIntent) -> None:
        """Called right after a payment intent is created."""
        ...

    async def record_confirmed(self, user_id: str, category: PlanCategory, intent: PaymentIntent) -> None:
        """Called once the intent is confirmed, before generation starts."""
        ...


class SettingsPaymentPolicy:
    """Same rule for every user: listed categories are paid, at one price."""

    def __init__(
        self,
        paid_categories: Iterable[PlanCategory],
        default_price: Decimal,
        prices: dict[PlanCategory, Decimal] | None = None,
    ):
        self.paid_categories = frozenset(paid_categories)
        self.default_price = default_price
        self.prices = prices or {}

    @classmethod
    def from_settings(cls, settings=None) -> "SettingsPaymentPolicy":
        if settings is None:
            from planwell.config import get_settings
            settings = get_settings()
        return cls(settings.paid_category_set, settings.default_plan_price)

    async def requires_payment(self, user_id: str, category: PlanCategory) -> bool:
        return category in self.paid_categories

    async def price_for(self, category: PlanCategory) -> Decimal:
        return self.prices.get(category, self.default_price)

    async def record_intent(self, user_id: str, category: PlanCategory, intent: PaymentIntent) -> None:
        logger.info("Payment %s created for user=%s %s", intent.external_id, user_id, category.value)

    async def record_confirmed(self, user_id: str, category: PlanCategory, intent: PaymentIntent) -> None:
        logger.info("Payment %s confirmed for user=%s %s", intent.external_id, user_id, category.value)


class SupabasePaymentPolicy:
    """Payment rules and records kept in Supabase tables."""

    def __init__(self, client: Any = None, default_price: Decimal = Decimal("19.90")):
        self._client = client
        self.default_price = default_price

    @property
    def client(self) -> Any:
        if self._client is None:
            from planwell.db.client import get_client
            self._client = get_client()
        return self._client

    async def _payment_setting(self, category: PlanCategory) -> dict | None:
        response = await asyncio.to_thread(
            lambda: self.client.table("payment_settings")
            .select("price, is_active")
            .eq("plan_type", PLAN_TYPES[category])
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def requires_payment(self, user_id: str, category: PlanCategory) -> bool:
        setting = await self._payment_setting(category)
        if not setting:
            return False

        response = await asyncio.to_thread(
            lambda: self.client.table("plan_access")
            .select("payment_required")
            .eq("user_id", user_id)
            .eq("plan_type", PLAN_TYPES[category])
            .eq("is_active", True)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if response.data and response.data[0].get("payment_required") is False:
            logger.info("User %s is exempt from payment for %s", user_id, category.value)
            return False
        return True

    async def price_for(self, category: PlanCategory) -> Decimal:
        setting = await self._payment_setting(category)
        if setting and setting.get("price") is not None:
            return Decimal(str(setting["price"]))
        return self.default_price

    async def record_intent(self, user_id: str, category: PlanCategory, intent: PaymentIntent) -> None:
        row = {
            "user_id": user_id,
            "payment_id": intent.external_id,
            "plan_type": PLAN_TYPES[category],
            "amount": float(intent.amount),
            "status": "pending",
        }
        await asyncio.to_thread(lambda: self.client.table("payments").insert(row).execute())

    async def record_confirmed(self, user_id: str, category: PlanCategory, intent: PaymentIntent) -> None:
        now = datetime.now(timezone.utc).isoformat()
        plan_type = PLAN_TYPES[category]

        def write() -> None:
            self.client.table("payments").update(
                {"status": "completed", "updated_at": now}
            ).eq("payment_id", intent.external_id).execute()
            self.client.table("plan_access").update(
                {"is_active": False, "updated_at": now}
            ).eq("user_id", user_id).eq("plan_type", plan_type).eq("is_active", True).execute()
            self.client.table("plan_access").insert(
                {
                    "user_id": user_id,
                    "plan_type": plan_type,
                    "payment_required": False,
                    "is_active": True,
                }
            ).execute()

        await asyncio.to_thread(write)
        logger.info("Granted %s plan access to user=%s after payment %s", plan_type, user_id, intent.external_id)
