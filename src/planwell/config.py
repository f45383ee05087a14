"""
Planwell - Configuration and settings.

Credentials are optional at load time so that importing and testing the
package never needs a full environment. Code that actually talks to a
provider calls Settings.require(), which fails fast with ConfigurationError.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from planwell.errors import ConfigurationError
from planwell.models import PaymentProvider, PlanCategory, ProviderConfig


class Settings(BaseSettings):
    """Process-wide settings read from the environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    planwell_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Prompt logging
    # PLANWELL_LOG_PROMPTS=1 - log every AI call to prompt_logs/ (dev only)
    planwell_log_prompts: bool = False

    # Supabase (counter store, payment records)
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    # Payments
    payment_provider: PaymentProvider = PaymentProvider.ASAAS
    asaas_api_key: str | None = None
    asaas_base_url: str = "https://api.asaas.com/v3"
    mercadopago_access_token: str | None = None
    mercadopago_base_url: str = "https://api.mercadopago.com"
    payment_http_timeout_seconds: float = 10.0
    payment_poll_interval_seconds: float = 5.0
    payment_poll_max_seconds: float = 600.0

    # Comma-separated plan categories that require payment
    paid_categories: str = "meal,workout,rehab"
    default_plan_price: Decimal = Decimal("19.90")

    # AI providers (OpenAI-compatible chat-completion endpoints)
    primary_ai_base_url: str = "https://api.groq.com/openai/v1"
    primary_ai_api_key: str | None = None
    primary_ai_model: str = "mistral-saba-24b"
    fallback_ai_base_url: str = "https://api.llama-api.com"
    fallback_ai_api_key: str | None = None
    fallback_ai_model: str = "nous-hermes-2-mixtral-8x7b"
    ai_fallback_enabled: bool = True
    ai_temperature: float = 0.7
    ai_max_tokens: int = 4000
    ai_timeout_seconds: float = 120.0

    @property
    def is_development(self) -> bool:
        return self.planwell_env == "development"

    @property
    def paid_category_set(self) -> frozenset[PlanCategory]:
        names = [part for part in self.paid_categories.split(",") if part.strip()]
        return frozenset(PlanCategory.parse(name) for name in names)

    def require(self, name: str) -> str:
        """Return a configured value or raise ConfigurationError."""
        value = getattr(self, name, None)
        if not value:
            raise ConfigurationError(name.upper())
        return str(value)

    def primary_ai_provider(self) -> ProviderConfig:
        return ProviderConfig(
            name="primary",
            base_url=self.primary_ai_base_url,
            api_key=self.require("primary_ai_api_key"),
            model=self.primary_ai_model,
        )

    def fallback_ai_provider(self) -> ProviderConfig | None:
        """Fallback provider, or None when it is not configured."""
        if not self.fallback_ai_api_key:
            return None
        return ProviderConfig(
            name="fallback",
            base_url=self.fallback_ai_base_url,
            api_key=self.fallback_ai_api_key,
            model=self.fallback_ai_model,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
