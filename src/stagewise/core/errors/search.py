"""Search provider error classes.

Raised by the web search providers; the research phases catch them at the
node boundary and degrade to empty findings.
"""

from typing import Optional


class SearchProviderError(Exception):
    """Base exception for search provider errors.

    Attributes:
        provider: Name of the provider that raised the error
        message: Human-readable error description
        retryable: Whether the error is potentially transient
        original_error: The underlying exception if available
    """

    def __init__(
        self,
        provider: str,
        message: str,
        retryable: bool = False,
        original_error: Optional[Exception] = None,
    ):
        self.provider = provider
        self.message = message
        self.retryable = retryable
        self.original_error = original_error
        super().__init__(f"[{provider}] {message}")


class RateLimitError(SearchProviderError):
    """Raised when a provider's rate limit is exceeded.

    Always retryable. ``retry_after`` carries the wait hinted by the API,
    when it sent one.
    """

    def __init__(
        self,
        provider: str,
        retry_after: Optional[float] = None,
        original_error: Optional[Exception] = None,
    ):
        self.retry_after = retry_after
        message = "Rate limit exceeded"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(
            provider=provider,
            message=message,
            retryable=True,
            original_error=original_error,
        )


class AuthenticationError(SearchProviderError):
    """Raised when API authentication fails.

    Not retryable: the API key has to be fixed first.
    """

    def __init__(
        self,
        provider: str,
        message: str = "Authentication failed",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            provider=provider,
            message=message,
            retryable=False,
            original_error=original_error,
        )
