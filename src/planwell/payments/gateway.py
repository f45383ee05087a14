"""
Planwell - Payment gateway interface.

One PaymentGateway per provider backend. Each adapter talks to its
provider's REST API and normalizes the provider's status vocabulary into
the four-value PaymentStatus enum. Callers only ever see PaymentIntent and
PaymentStatus.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from planwell.errors import (
    ConfigurationError,
    NetworkError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from planwell.models import PaymentIntent, PaymentProvider, PaymentStatus

logger = logging.getLogger(__name__)

# Aliases some backends (and our own payments table) use for a settled payment
COMMON_STATUS_ALIASES: dict[str, PaymentStatus] = {
    "paid": PaymentStatus.CONFIRMED,
    "settled": PaymentStatus.CONFIRMED,
    "completed": PaymentStatus.CONFIRMED,
    "expired": PaymentStatus.EXPIRED,
}


class PaymentGateway(ABC):
    """Uniform create / check operations over one payment provider."""

    provider: PaymentProvider
    credential_setting: str
    status_map: dict[str, PaymentStatus] = {}

    def __init__(
        self,
        *,
        base_url: str,
        credential: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._credential = credential
        self._timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def create(self, user_id: str, amount: Decimal | float | str, description: str) -> PaymentIntent:
        """
        Create a payment intent with the provider.

        Raises:
            ValidationError: user_id, amount or description missing/invalid
            ConfigurationError: provider credentials absent
            ProviderError: provider answered with a non-success response
            NetworkError: provider unreachable
        """
        value = _validate_create(user_id, amount, description)
        self._require_credential()

        logger.info("Creating %s payment for user=%s amount=%s", self.provider.value, user_id, value)
        return await self._create(user_id, value, description.strip())

    async def check_status(self, intent_id: str) -> PaymentStatus:
        """
        Fetch the current normalized status of a payment.

        Raises:
            NotFoundError: the provider does not know intent_id
            ProviderError / NetworkError: as for create()
        """
        if not intent_id:
            raise ValidationError("Payment id is required", field="intent_id")
        self._require_credential()
        raw = await self._fetch_status(intent_id)
        status = self.normalize_status(raw)
        logger.debug("%s payment %s: %r -> %s", self.provider.value, intent_id, raw, status.value)
        return status

    def normalize_status(self, raw: str | None) -> PaymentStatus:
        """Map a provider-native status string onto PaymentStatus."""
        if not raw:
            return PaymentStatus.PENDING
        key = raw.strip()
        if key in self.status_map:
            return self.status_map[key]
        return COMMON_STATUS_ALIASES.get(key.lower(), PaymentStatus.PENDING)

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _create(self, user_id: str, amount: Decimal, description: str) -> PaymentIntent:
        ...

    @abstractmethod
    async def _fetch_status(self, intent_id: str) -> str | None:
        """Return the provider-native status string."""
        ...

    @abstractmethod
    def _auth_headers(self) -> dict[str, str]:
        ...

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _require_credential(self) -> str:
        if not self._credential:
            raise ConfigurationError(self.credential_setting)
        return self._credential

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        resource_id: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, json=json, params=params)
        except httpx.TransportError as e:
            raise NetworkError(
                f"{self.provider.value} unreachable: {e.__class__.__name__}: {e}",
                provider=self.provider.value,
            ) from e

        if response.status_code >= 400:
            payload = _response_payload(response)
            logger.warning("%s API error %s: %s", self.provider.value, response.status_code, payload)
            if response.status_code == 404 and resource_id:
                raise NotFoundError(
                    f"{self.provider.value} payment {resource_id} not found",
                    provider=self.provider.value,
                    status_code=404,
                    payload=payload,
                )
            raise ProviderError(
                f"{self.provider.value} returned HTTP {response.status_code}",
                provider=self.provider.value,
                status_code=response.status_code,
                payload=payload,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.provider.value} returned a non-JSON body",
                provider=self.provider.value,
                status_code=response.status_code,
                payload={"body": response.text},
            ) from e


def _validate_create(user_id: str, amount: Any, description: str) -> Decimal:
    if not user_id or not str(user_id).strip():
        raise ValidationError("User id is required", field="user_id")
    if not description or not description.strip():
        raise ValidationError("Description is required", field="description")
    if amount is None or amount == "":
        raise ValidationError("Amount is required", field="amount")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount") from e
    if not value.is_finite() or value <= 0:
        raise ValidationError(f"Amount must be positive: {amount!r}", field="amount")
    return value.quantize(Decimal("0.01"))


def _response_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"body": response.text}
    return payload if isinstance(payload, dict) else {"body": payload}
