"""Asaas payment backend."""

from datetime import date, timedelta
from decimal import Decimal

from planwell.models import PaymentIntent, PaymentProvider, PaymentStatus
from planwell.payments.gateway import PaymentGateway

ASAAS_STATUS_MAP: dict[str, PaymentStatus] = {
    "PENDING": PaymentStatus.PENDING,
    "AWAITING_RISK_ANALYSIS": PaymentStatus.PENDING,
    "APPROVED_BY_RISK_ANALYSIS": PaymentStatus.PENDING,
    "RECEIVED": PaymentStatus.CONFIRMED,
    "CONFIRMED": PaymentStatus.CONFIRMED,
    "RECEIVED_IN_CASH": PaymentStatus.CONFIRMED,
    "OVERDUE": PaymentStatus.EXPIRED,
    "REPROVED_BY_RISK_ANALYSIS": PaymentStatus.FAILED,
    "REFUNDED": PaymentStatus.FAILED,
    "REFUND_REQUESTED": PaymentStatus.FAILED,
    "REFUND_IN_PROGRESS": PaymentStatus.FAILED,
    "CHARGEBACK_REQUESTED": PaymentStatus.FAILED,
    "CHARGEBACK_DISPUTE": PaymentStatus.FAILED,
    "AWAITING_CHARGEBACK_REVERSAL": PaymentStatus.FAILED,
    "DELETED": PaymentStatus.FAILED,
}


class AsaasGateway(PaymentGateway):
    """Charges created through POST /payments, checked through GET /payments/{id}."""

    provider = PaymentProvider.ASAAS
    credential_setting = "ASAAS_API_KEY"
    status_map = ASAAS_STATUS_MAP

    def _auth_headers(self) -> dict[str, str]:
        return {"access_token": self._require_credential()}

    async def _create(self, user_id: str, amount: Decimal, description: str) -> PaymentIntent:
        due = date.today() + timedelta(days=1)
        data = await self._request(
            "POST",
            "/payments",
            json={
                "customer": user_id,
                "billingType": "UNDEFINED",
                "value": float(amount),
                "dueDate": due.isoformat(),
                "description": description,
                "externalReference": user_id,
            },
        )
        return PaymentIntent(
            external_id=str(data["id"]),
            status=self.normalize_status(data.get("status")),
            amount=amount,
            provider=self.provider,
            checkout_url=data.get("invoiceUrl"),
        )

    async def _fetch_status(self, intent_id: str) -> str | None:
        data = await self._request("GET", f"/payments/{intent_id}", resource_id=intent_id)
        return data.get("status")
