"""OpenAI generation provider.

Wraps ``openai.AsyncOpenAI`` chat completions behind the
:class:`GenerationProvider` interface. Rate limits, timeouts, connection
errors and 5xx responses are retried with exponential backoff; everything
else is mapped onto the ``LLMError`` hierarchy.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

import openai

from stagewise.core.errors.llm import (
    AuthenticationError,
    InvalidRequestError,
    LLMError,
    RateLimitError,
)
from stagewise.core.llm_provider import (
    GenerationProvider,
    GenerationRequest,
    GenerationResponse,
    TokenUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 120.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_RETRY_DELAY = 1.2


class OpenAIGenerationProvider(GenerationProvider):
    """Generation provider for OpenAI chat models.

    Attributes:
        default_model: Model used when a request does not name one
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        default_model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_retry_delay: float = DEFAULT_BASE_RETRY_DELAY,
        default_temperature: Optional[float] = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        """Initialize the provider.

        Args:
            api_key: OpenAI API key. If not provided, reads OPENAI_API_KEY.
            default_model: Model used when a request does not name one
            base_url: Optional OpenAI-compatible endpoint
            timeout: Request timeout in seconds
            max_retries: Retries for transient errors
            base_retry_delay: Base delay for exponential backoff
            default_temperature: Temperature used when a request sets none
            client: Pre-built client (tests)

        Raises:
            ValueError: If no API key is available and no client is given
        """
        self.default_model = default_model
        self._max_retries = max_retries
        self._base_retry_delay = base_retry_delay
        self._default_temperature = default_temperature

        if client is not None:
            self._client = client
            return

        resolved_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not resolved_key:
            raise ValueError(
                "OpenAI API key required. Provide via api_key parameter "
                "or OPENAI_API_KEY environment variable."
            )
        # Retries are handled here so backoff and logging stay in one place
        self._client = openai.AsyncOpenAI(
            api_key=resolved_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    def _build_kwargs(self, request: GenerationRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.get_model(request.model),
            "messages": [m.to_dict() for m in request.to_messages()],
        }
        temperature = request.temperature if request.temperature is not None else self._default_temperature
        if temperature is not None:
            kwargs["temperature"] = temperature
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def complete(self, request: GenerationRequest) -> GenerationResponse:
        """Run one chat completion with retries.

        Raises:
            RateLimitError: Rate limited after all retries
            AuthenticationError: Invalid API key
            InvalidRequestError: Rejected request (bad parameters, context too long)
            LLMError: Any other API failure
        """
        kwargs = self._build_kwargs(request)
        attempt = 0
        while True:
            try:
                response = await self._client.chat.completions.create(**kwargs)
                return self._parse_response(response)
            except openai.RateLimitError as exc:
                if attempt >= self._max_retries:
                    raise RateLimitError(
                        f"OpenAI rate limit exceeded after {attempt + 1} attempts: {exc}",
                        provider=self.name,
                    ) from exc
                error: Exception = exc
            except (openai.APITimeoutError, openai.APIConnectionError) as exc:
                if attempt >= self._max_retries:
                    raise LLMError(
                        f"OpenAI API connection failed: {exc}",
                        provider=self.name,
                        retryable=True,
                    ) from exc
                error = exc
            except openai.AuthenticationError as exc:
                raise AuthenticationError(str(exc), provider=self.name) from exc
            except openai.BadRequestError as exc:
                raise InvalidRequestError(str(exc), provider=self.name) from exc
            except openai.APIStatusError as exc:
                if exc.status_code < 500 or attempt >= self._max_retries:
                    raise LLMError(
                        f"OpenAI API error (status {exc.status_code}): {exc.message}",
                        provider=self.name,
                        retryable=exc.status_code >= 500,
                        status_code=exc.status_code,
                    ) from exc
                error = exc

            delay = self._base_retry_delay * (2**attempt)
            attempt += 1
            logger.warning(
                "OpenAI call failed (%s); retry %d/%d in %.1fs",
                type(error).__name__,
                attempt,
                self._max_retries,
                delay,
            )
            await asyncio.sleep(delay)

    def _parse_response(self, response: Any) -> GenerationResponse:
        if not response.choices:
            raise LLMError("OpenAI returned no choices", provider=self.name, retryable=True)
        choice = response.choices[0]
        usage = TokenUsage()
        if response.usage is not None:
            details = getattr(response.usage, "completion_tokens_details", None)
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
                reasoning_tokens=(getattr(details, "reasoning_tokens", None) or 0) if details else 0,
            )
        return GenerationResponse(
            text=choice.message.content or "",
            usage=usage,
            model=response.model,
            finish_reason=choice.finish_reason,
        )
