"""
Tests for the Supabase-backed payment policy.
"""

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

from planwell.models import PaymentIntent, PaymentProvider, PaymentStatus, PlanCategory
from planwell.payments.access import PLAN_TYPES, SupabasePaymentPolicy


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


class FakeTable:
    """Chainable query builder that returns fixed rows and records writes."""

    def __init__(self, rows=None):
        self.rows = rows or []
        self.filters = []
        self.inserted = []
        self.updated = []

    def select(self, *args):
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, *args, **kwargs):
        return self

    def limit(self, n):
        return self

    def insert(self, row):
        self.inserted.append(row)
        return self

    def update(self, values):
        self.updated.append(values)
        return self

    def execute(self):
        return SimpleNamespace(data=self.rows)


def _client(**tables):
    client = MagicMock()
    client.table.side_effect = lambda name: tables.setdefault(name, FakeTable())
    return client, tables


def _intent():
    return PaymentIntent(
        external_id="pay_1",
        status=PaymentStatus.CONFIRMED,
        amount=Decimal("19.90"),
        provider=PaymentProvider.ASAAS,
    )


class TestRequiresPayment:
    def test_no_active_setting_means_free(self):
        client, _ = _client(payment_settings=FakeTable([]))
        assert _run(SupabasePaymentPolicy(client).requires_payment("user-1", PlanCategory.MEAL)) is False

    def test_active_setting_requires_payment(self):
        client, tables = _client(
            payment_settings=FakeTable([{"price": 19.9, "is_active": True}]),
            plan_access=FakeTable([]),
        )
        assert _run(SupabasePaymentPolicy(client).requires_payment("user-1", PlanCategory.REHAB)) is True
        assert ("plan_type", "rehabilitation") in tables["payment_settings"].filters

    def test_user_exemption(self):
        client, _ = _client(
            payment_settings=FakeTable([{"price": 19.9, "is_active": True}]),
            plan_access=FakeTable([{"payment_required": False}]),
        )
        assert _run(SupabasePaymentPolicy(client).requires_payment("user-1", PlanCategory.MEAL)) is False


class TestPricing:
    def test_price_from_settings_table(self):
        client, _ = _client(payment_settings=FakeTable([{"price": 24.5, "is_active": True}]))
        assert _run(SupabasePaymentPolicy(client).price_for(PlanCategory.WORKOUT)) == Decimal("24.5")

    def test_default_price(self):
        client, _ = _client(payment_settings=FakeTable([]))
        policy = SupabasePaymentPolicy(client, default_price=Decimal("9.90"))
        assert _run(policy.price_for(PlanCategory.WORKOUT)) == Decimal("9.90")


class TestRecords:
    def test_record_intent_inserts_pending_payment(self):
        client, tables = _client()
        _run(SupabasePaymentPolicy(client).record_intent("user-1", PlanCategory.MEAL, _intent()))

        assert tables["payments"].inserted == [
            {
                "user_id": "user-1",
                "payment_id": "pay_1",
                "plan_type": PLAN_TYPES[PlanCategory.MEAL],
                "amount": 19.9,
                "status": "pending",
            }
        ]

    def test_record_confirmed_grants_access(self):
        client, tables = _client()
        _run(SupabasePaymentPolicy(client).record_confirmed("user-1", PlanCategory.WORKOUT, _intent()))

        assert tables["payments"].updated[0]["status"] == "completed"
        assert ("payment_id", "pay_1") in tables["payments"].filters
        assert tables["plan_access"].updated[0]["is_active"] is False
        assert tables["plan_access"].inserted == [
            {"user_id": "user-1", "plan_type": "workout", "payment_required": False, "is_active": True}
        ]
