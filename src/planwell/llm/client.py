"""
Planwell - AI generation client.

Calls an OpenAI-compatible chat-completion provider and parses its reply
into a PlanDocument. Failure handling:

- Transport failure (DNS, timeout, connection refused) -> NetworkError.
  If fallback is enabled for the request, the same prompt is sent once to
  the fallback provider instead.
- The provider answered with an error (HTTP status or an `error` field in
  the body) -> ProviderError. Never triggers fallback: the provider has
  rejected the prompt itself.
- The provider answered, but the content is not a JSON object
  -> MalformedResponseError. Partially parsed plans are never returned.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from planwell.errors import ConfigurationError, MalformedResponseError, NetworkError, ProviderError
from planwell.llm.prompt_logger import enable_prompt_logging, log_prompt
from planwell.models import PlanCategory, PlanDocument, ProviderConfig

logger = logging.getLogger(__name__)

# ```json ... ``` wrappers some models put around JSON despite instructions
_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


@dataclass(frozen=True)
class GenerationContext:
    """Per-request call settings. Passed explicitly, never shared."""

    fallback_enabled: bool = True
    temperature: float = 0.7
    max_tokens: int = 4000
    json_mode: bool = True
    category: PlanCategory | None = None
    attempt_id: str | None = None


ClientFactory = Callable[[ProviderConfig], Any]


def default_client_factory(provider: ProviderConfig, timeout: float = 120.0) -> AsyncOpenAI:
    # No SDK-level retries: the only retry is the explicit fallback switch.
    return AsyncOpenAI(
        api_key=provider.api_key,
        base_url=provider.base_url,
        timeout=timeout,
        max_retries=0,
    )


class AIGenerationClient:
    """Primary provider with a one-shot fallback on transport failure."""

    def __init__(
        self,
        primary: ProviderConfig | None = None,
        fallback: ProviderConfig | None = None,
        *,
        settings=None,
        client_factory: ClientFactory | None = None,
        timeout: float = 120.0,
    ):
        self._primary = primary
        self._fallback = fallback
        self._settings = settings
        self._client_factory = client_factory or (lambda p: default_client_factory(p, timeout))
        self._clients: dict[str, Any] = {}

    @classmethod
    def from_settings(cls, settings=None) -> "AIGenerationClient":
        """Provider credentials are resolved on each call, not here."""
        if settings is None:
            from planwell.config import get_settings
            settings = get_settings()
        if settings.planwell_log_prompts:
            enable_prompt_logging(True)
        return cls(settings=settings, timeout=settings.ai_timeout_seconds)

    def primary_provider(self) -> ProviderConfig:
        if self._primary is not None:
            return self._primary
        if self._settings is None:
            raise ConfigurationError("PRIMARY_AI_API_KEY")
        return self._settings.primary_ai_provider()

    def fallback_provider(self) -> ProviderConfig | None:
        if self._fallback is not None or self._settings is None:
            return self._fallback
        return self._settings.fallback_ai_provider()

    def _client_for(self, provider: ProviderConfig) -> Any:
        key = f"{provider.name}:{provider.base_url}"
        if key not in self._clients:
            self._clients[key] = self._client_factory(provider)
        return self._clients[key]

    async def generate(self, prompt: list[dict] | str, context: GenerationContext | None = None) -> PlanDocument:
        """
        Generate a plan document.

        Args:
            prompt: Chat messages, or a single user prompt string
            context: Per-request settings (fallback, temperature, ...)

        Raises:
            ConfigurationError: primary provider not configured
            NetworkError: transport failure and no fallback used
            ProviderError: a provider rejected the request
            MalformedResponseError: content is not a JSON object
        """
        context = context or GenerationContext()
        messages = [{"role": "user", "content": prompt}] if isinstance(prompt, str) else prompt
        primary = self.primary_provider()
        available = self.fallback_provider()
        fallback = available if context.fallback_enabled else None

        # With fallback switched off for this request, offer it as the next step
        action = "use_fallback" if available is not None and fallback is None else "retry"
        try:
            return await self._call(primary, messages, context, network_action=action)
        except NetworkError as e:
            if fallback is None:
                raise
            logger.warning("Primary AI provider unreachable (%s), switching to fallback %s", e, fallback.model)

        return await self._call(fallback, messages, context, network_action="retry")

    async def _call(
        self,
        provider: ProviderConfig,
        messages: list[dict],
        context: GenerationContext,
        *,
        network_action: str,
    ) -> PlanDocument:
        client = self._client_for(provider)
        params: dict[str, Any] = {
            "temperature": context.temperature,
            "max_tokens": context.max_tokens,
        }
        if context.json_mode:
            params["response_format"] = {"type": "json_object"}

        logger.info("Calling %s AI provider (%s) for attempt %s", provider.name, provider.model, context.attempt_id)
        try:
            completion = await client.chat.completions.create(
                model=provider.model,
                messages=messages,
                **params,
            )
        except APIConnectionError as e:
            self._log(provider, messages, context, error=str(e))
            raise NetworkError(
                f"{provider.name} AI provider unreachable: {e}",
                provider=provider.name,
                action=network_action,
            ) from e
        except APIStatusError as e:
            self._log(provider, messages, context, error=str(e))
            raise ProviderError(
                f"{provider.name} AI provider returned HTTP {e.status_code}",
                provider=provider.name,
                status_code=e.status_code,
                payload=e.body,
            ) from e

        error = getattr(completion, "error", None)
        if error:
            self._log(provider, messages, context, error=str(error))
            raise ProviderError(
                f"{provider.name} AI provider reported an error: {_error_message(error)}",
                provider=provider.name,
                payload=error,
            )

        raw = _first_content(completion)
        self._log(provider, messages, context, raw_response=raw)
        content = parse_plan_content(raw, provider=provider.name)

        return PlanDocument(
            category=context.category,
            content=content,
            provider=provider.name,
            model=provider.model,
        )

    def _log(self, provider: ProviderConfig, messages: list[dict], context: GenerationContext, **kwargs) -> None:
        log_prompt(
            provider=provider.name,
            model=provider.model,
            messages=messages,
            attempt_id=context.attempt_id,
            params={"temperature": context.temperature, "max_tokens": context.max_tokens},
            **kwargs,
        )


def _first_content(completion: Any) -> str | None:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


def parse_plan_content(raw: str | None, *, provider: str | None = None) -> dict[str, Any]:
    """Parse model output into a JSON object or raise MalformedResponseError."""
    if raw is None or not raw.strip():
        raise MalformedResponseError("AI response had no content", raw=raw, provider=provider)

    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        content = json.loads(text)
    except ValueError as e:
        raise MalformedResponseError(f"AI response is not valid JSON: {e}", raw=raw, provider=provider) from e

    if not isinstance(content, dict) or not content:
        raise MalformedResponseError("AI response is not a JSON object", raw=raw, provider=provider)
    return content
