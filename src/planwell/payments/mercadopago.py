"""Mercado Pago payment backend."""

import uuid
from decimal import Decimal

from planwell.models import PaymentIntent, PaymentProvider, PaymentStatus
from planwell.payments.gateway import PaymentGateway

MERCADOPAGO_STATUS_MAP: dict[str, PaymentStatus] = {
    "pending": PaymentStatus.PENDING,
    "in_process": PaymentStatus.PENDING,
    "in_mediation": PaymentStatus.PENDING,
    "authorized": PaymentStatus.PENDING,
    "approved": PaymentStatus.CONFIRMED,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "refunded": PaymentStatus.FAILED,
    "charged_back": PaymentStatus.FAILED,
}


class MercadoPagoGateway(PaymentGateway):
    """
    Checkout preferences created through POST /checkout/preferences.

    A preference is not a payment: Mercado Pago only creates a payment once
    the user pays, under an id we cannot know in advance. The preference is
    therefore tagged with the intent's own id as external_reference, and
    status checks search payments by that reference.

    binary_mode makes Mercado Pago settle every payment as either approved
    or rejected, so a preference never lingers in an ambiguous state.
    """

    provider = PaymentProvider.MERCADOPAGO
    credential_setting = "MERCADOPAGO_ACCESS_TOKEN"
    status_map = MERCADOPAGO_STATUS_MAP

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._require_credential()}"}

    async def _create(self, user_id: str, amount: Decimal, description: str) -> PaymentIntent:
        reference = str(uuid.uuid4())
        data = await self._request(
            "POST",
            "/checkout/preferences",
            json={
                "items": [
                    {
                        "title": description,
                        "unit_price": float(amount),
                        "quantity": 1,
                    }
                ],
                "external_reference": reference,
                "metadata": {"user_id": user_id},
                "binary_mode": True,
            },
        )
        return PaymentIntent(
            id=reference,
            external_id=reference,
            status=PaymentStatus.PENDING,
            amount=amount,
            provider=self.provider,
            checkout_url=data.get("init_point"),
            provider_reference=str(data["id"]),
        )

    async def _fetch_status(self, intent_id: str) -> str | None:
        data = await self._request(
            "GET",
            "/v1/payments/search",
            params={
                "external_reference": intent_id,
                "sort": "date_created",
                "criteria": "desc",
            },
        )
        results = data.get("results") or []
        if not results:
            # Nothing paid yet
            return None
        newest = max(results, key=lambda payment: payment.get("date_created") or "")
        return newest.get("status")
