"""
Planwell - Payments.

Gateway adapters per provider, the confirmation poller, and the policy
that decides whether a plan category needs payment.
"""

from planwell.models import PaymentProvider
from planwell.payments.asaas import AsaasGateway
from planwell.payments.gateway import PaymentGateway
from planwell.payments.mercadopago import MercadoPagoGateway
from planwell.payments.poller import PaymentPoller, PollOutcome, PollResult


def get_payment_gateway(provider: PaymentProvider | str | None = None, settings=None) -> PaymentGateway:
    """Build the gateway for the configured (or given) provider."""
    if settings is None:
        from planwell.config import get_settings
        settings = get_settings()

    provider = PaymentProvider(provider or settings.payment_provider)
    timeout = settings.payment_http_timeout_seconds

    if provider is PaymentProvider.MERCADOPAGO:
        return MercadoPagoGateway(
            base_url=settings.mercadopago_base_url,
            credential=settings.mercadopago_access_token,
            timeout=timeout,
        )
    return AsaasGateway(
        base_url=settings.asaas_base_url,
        credential=settings.asaas_api_key,
        timeout=timeout,
    )


__all__ = [
    "AsaasGateway",
    "MercadoPagoGateway",
    "PaymentGateway",
    "PaymentPoller",
    "PollOutcome",
    "PollResult",
    "get_payment_gateway",
]
