"""Generation provider error classes."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from stagewise.core.llm_provider import TokenUsage


class LLMError(Exception):
    """Base exception for LLM operations.

    Attributes:
        message: Human-readable error description
        provider: Name of the provider that raised the error
        retryable: Whether the operation can be retried
        status_code: HTTP status code if applicable
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable
        self.status_code = status_code


class RateLimitError(LLMError):
    """Rate limit exceeded error.

    Attributes:
        retry_after: Seconds to wait before retrying
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider=provider, retryable=True, status_code=429)
        self.retry_after = retry_after


class AuthenticationError(LLMError):
    """Authentication failed error."""

    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        provider: Optional[str] = None,
    ):
        super().__init__(message, provider=provider, retryable=False, status_code=401)


class InvalidRequestError(LLMError):
    """Invalid request error (bad parameters, context too long, etc.)."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        param: Optional[str] = None,
    ):
        super().__init__(message, provider=provider, retryable=False, status_code=400)
        self.param = param


class StructuredOutputError(LLMError):
    """The model answered, but not with an object matching the requested schema.

    Attributes:
        raw_content: The text the model returned (truncated for logging)
        usage: Tokens spent across every failed attempt, when known
        model: Model that produced the last attempt, when known
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        raw_content: Optional[str] = None,
        usage: Optional["TokenUsage"] = None,
        model: Optional[str] = None,
    ):
        super().__init__(message, provider=provider, retryable=True)
        self.raw_content = raw_content[:500] if raw_content else raw_content
        self.usage = usage
        self.model = model
