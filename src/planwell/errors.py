"""
Planwell - Error taxonomy.

Every failure the orchestration core can surface derives from PlanwellError.
Each error carries a human-readable message for the end user and an
optional action hint the caller can turn into a control:

- "retry": offer a "try again" button
- "use_fallback": offer to switch to the fallback AI provider
- None: nothing the user can do (configuration, invalid input)
"""

from typing import Any, Literal

Action = Literal["retry", "use_fallback"] | None


class PlanwellError(Exception):
    """Base class for all planwell errors."""

    default_user_message = "Something went wrong while generating your plan."
    default_action: Action = None

    def __init__(self, message: str, *, user_message: str | None = None, action: Action = None):
        super().__init__(message)
        self.user_message = user_message or self.default_user_message
        self.action = action if action is not None else self.default_action


class ConfigurationError(PlanwellError):
    """A required credential or setting is missing. Never retried."""

    default_user_message = "Plan generation is not available right now. Please contact support."

    def __init__(self, setting: str, message: str | None = None):
        super().__init__(message or f"Missing required configuration: {setting}")
        self.setting = setting


class ValidationError(PlanwellError):
    """The caller supplied malformed input. Surfaced immediately."""

    default_user_message = "Some of the information provided is invalid."

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class ProviderError(PlanwellError):
    """A remote service answered with a well-formed error."""

    default_user_message = "The provider rejected the request. Please try again."
    default_action: Action = "retry"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.payload = payload if payload is not None else {}


class NotFoundError(ProviderError):
    """The provider does not know the requested payment id."""

    default_user_message = "We could not find that payment."


class NetworkError(PlanwellError):
    """Transport failure: DNS, timeout, connection refused."""

    default_user_message = "We could not reach the plan service. Check your connection and try again."
    default_action: Action = "retry"

    def __init__(self, message: str, *, provider: str, action: Action = None):
        super().__init__(message, action=action)
        self.provider = provider


class MalformedResponseError(PlanwellError):
    """The AI answered, but its content is not a structured plan."""

    default_user_message = "The generated plan was incomplete. Please try again."
    default_action: Action = "retry"

    def __init__(self, message: str, *, raw: str | None = None, provider: str | None = None):
        super().__init__(message)
        self.raw = raw
        self.provider = provider


class PaymentTimedOut(PlanwellError):
    """Payment was not confirmed before the polling budget ran out."""

    default_user_message = "We have not received your payment confirmation yet. You can try again."
    default_action: Action = "retry"


class PaymentFailed(PlanwellError):
    """The provider reported the payment as failed or expired."""

    default_user_message = "Your payment was not approved."
    default_action: Action = "retry"

    def __init__(self, message: str, *, status: str):
        super().__init__(message)
        self.status = status


class GenerationInProgress(PlanwellError):
    """The session already has a generation in flight (or already tried automatically)."""

    default_user_message = "A plan is already being generated."


class GenerationCancelled(PlanwellError):
    """The attempt was cancelled before it finished."""

    default_user_message = "Plan generation was cancelled."
    default_action: Action = "retry"


class GenerationError(PlanwellError):
    """
    Terminal failure of one plan attempt.

    Wraps the underlying error and records the coordinator state in which
    it happened. The user-facing message and action come from the cause.
    """

    def __init__(self, stage: str, cause: PlanwellError, *, attempt_id: str | None = None):
        super().__init__(
            f"Plan generation failed during {stage}: {cause}",
            user_message=cause.user_message,
            action=cause.action,
        )
        self.stage = stage
        self.cause = cause
        self.attempt_id = attempt_id

    def to_detail(self) -> dict[str, Any]:
        """Serialize for API responses."""
        detail: dict[str, Any] = {
            "code": type(self.cause).__name__,
            "stage": self.stage,
            "message": self.user_message,
        }
        if self.action:
            detail["action"] = self.action
        if self.attempt_id:
            detail["attemptId"] = self.attempt_id
        return detail
