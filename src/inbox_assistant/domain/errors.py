"""Domain-specific exception classes for the inbox assistant."""


class AssistantError(Exception):
    """Base class for all domain errors in the inbox assistant."""


class ConfigurationError(AssistantError):
    """Raised when no usable LLM credential resolves for a request.

    Always raised before any provider request is issued.
    """


class UnsupportedProviderError(ConfigurationError):
    """Raised when a user selects an AI provider that does not exist.

    Attributes:
        provider: The provider name that was requested.
    """

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"AI provider not supported: {provider}")


class ResolutionError(AssistantError):
    """Raised when AI argument generation fails or returns invalid output.

    No action items are produced when this is raised, so callers must not
    attempt partial execution.

    Attributes:
        rule_id: The rule whose arguments could not be resolved.
    """

    def __init__(self, rule_id: str, reason: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Could not resolve action arguments for rule '{rule_id}': {reason}")


class SafeError(AssistantError):
    """An error whose ``safe_message`` may be shown to the client.

    Attributes:
        safe_message: Text suitable for an HTTP response body.
    """

    def __init__(self, safe_message: str, message: str | None = None) -> None:
        self.safe_message = safe_message
        super().__init__(message or safe_message)


class PlanNotFoundError(AssistantError):
    """Raised when a planned execution id does not exist."""

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"Planned execution not found: {plan_id}")


class ProviderAPIError(AssistantError):
    """A failed LLM provider HTTP call, normalized across providers.

    Raised by the HTTP-based backends (OpenAI, Groq, Ollama) so the error
    classifier can inspect the provider's message and error code.

    Attributes:
        provider: The provider that returned the error.
        status_code: HTTP status code, if a response was received.
        code: Provider error code (e.g. ``insufficient_quota``), if any.
        message: The provider's error message.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(message)
