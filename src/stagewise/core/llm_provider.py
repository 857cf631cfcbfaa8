"""Generation provider abstraction.

Defines the request/response dataclasses and the ``GenerationProvider`` ABC
the research phases call. Concrete providers implement ``complete()``; free
text and schema-validated structured generation are built on top of it.

Example:
    class OpenAIGenerationProvider(GenerationProvider):
        name = "openai"

        async def complete(self, request: GenerationRequest) -> GenerationResponse:
            ...

    response = await provider.generate_structured(prompt, StagePlan)
    plan = response.parsed
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from stagewise.core._json_parsing import extract_json
from stagewise.core.errors.llm import InvalidRequestError, StructuredOutputError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Retries after a structured response fails to parse or validate.
STRUCTURED_PARSE_RETRIES = 1


# =============================================================================
# Data Classes
# =============================================================================


class ChatRole(str, Enum):
    """Role of a message in a chat conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ChatMessage:
    role: ChatRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class GenerationRequest:
    """A single generation call.

    Attributes:
        prompt: User prompt
        system_prompt: Optional system instruction
        temperature: Sampling temperature (None = provider default)
        max_tokens: Output token cap (None = provider default)
        json_mode: Ask the provider for a JSON object response
        model: Model override (None = provider default)
    """

    prompt: str
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    json_mode: bool = False
    model: Optional[str] = None

    def to_messages(self) -> List[ChatMessage]:
        messages: List[ChatMessage] = []
        if self.system_prompt:
            messages.append(ChatMessage(role=ChatRole.SYSTEM, content=self.system_prompt))
        messages.append(ChatMessage(role=ChatRole.USER, content=self.prompt))
        return messages


@dataclass
class TokenUsage:
    """Token usage statistics.

    Attributes:
        prompt_tokens: Tokens in the input
        completion_tokens: Tokens in the output
        total_tokens: Total tokens used
        reasoning_tokens: Hidden reasoning tokens (o-series models)
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            reasoning_tokens=self.reasoning_tokens + other.reasoning_tokens,
        )


@dataclass
class GenerationResponse:
    """Response from a generation call.

    Attributes:
        text: The generated text
        usage: Token usage statistics
        model: Model that generated the response
        parsed: Validated object for structured calls
        finish_reason: Why generation stopped, as reported by the provider
    """

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None
    parsed: Optional[Any] = None
    finish_reason: Optional[str] = None


# =============================================================================
# Abstract Base Class
# =============================================================================


class GenerationProvider(ABC):
    """Abstract base class for generation providers.

    Attributes:
        name: Provider name (e.g., 'openai')
        default_model: Model used when a request does not name one
    """

    name: str = "base"
    default_model: str = ""

    @abstractmethod
    async def complete(self, request: GenerationRequest) -> GenerationResponse:
        """Run one chat completion.

        Raises:
            LLMError: On API or generation errors
            RateLimitError: If rate limited after retries
            AuthenticationError: If authentication fails
        """
        ...

    async def generate_text(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResponse:
        """Generate free text for ``prompt``."""
        request = GenerationRequest(
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        self.validate_request(request)
        return await self.complete(request)

    async def generate_structured(
        self,
        prompt: str,
        schema: Type[SchemaT],
        *,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerationResponse:
        """Generate an object matching ``schema``.

        The JSON schema is appended to the prompt and the provider is asked
        for JSON output. A response that does not parse or validate is
        retried once with the validation error fed back.

        Returns:
            GenerationResponse whose ``parsed`` is a ``schema`` instance and
            whose ``usage`` covers every attempt.

        Raises:
            StructuredOutputError: If no attempt yields a valid object; its
                ``usage`` covers the failed attempts
        """
        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        base_prompt = (
            f"{prompt}\n\nRespond with a single JSON object that conforms to this JSON schema:\n{schema_json}"
        )
        request = GenerationRequest(
            prompt=base_prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
        )
        self.validate_request(request)

        usage = TokenUsage()
        last_error: Optional[str] = None
        response: Optional[GenerationResponse] = None
        for attempt in range(STRUCTURED_PARSE_RETRIES + 1):
            if last_error is not None:
                request.prompt = (
                    f"{base_prompt}\n\nYour previous response was invalid: {last_error}\n"
                    "Return only the corrected JSON object."
                )
            response = await self.complete(request)
            usage = usage + response.usage
            try:
                parsed = self.parse_structured(response.text, schema)
            except StructuredOutputError as e:
                last_error = str(e)
                logger.warning(
                    "%s structured output for %s invalid (attempt %d): %s",
                    self.name,
                    schema.__name__,
                    attempt + 1,
                    e,
                )
                continue
            response.parsed = parsed
            response.usage = usage
            return response

        raise StructuredOutputError(
            f"No valid {schema.__name__} after {STRUCTURED_PARSE_RETRIES + 1} attempts: {last_error}",
            provider=self.name,
            raw_content=response.text if response else None,
            usage=usage,
            model=response.model if response else None,
        )

    def parse_structured(self, content: str, schema: Type[SchemaT]) -> SchemaT:
        """Parse and validate a model response against ``schema``.

        Raises:
            StructuredOutputError: If no JSON object is found or validation fails
        """
        json_str = extract_json(content or "")
        if json_str is None:
            raise StructuredOutputError("No JSON object in response", provider=self.name, raw_content=content)
        try:
            return schema.model_validate_json(json_str)
        except ValidationError as e:
            raise StructuredOutputError(
                f"Response does not match {schema.__name__}: {e.error_count()} error(s)",
                provider=self.name,
                raw_content=content,
            ) from e

    def validate_request(self, request: GenerationRequest) -> None:
        """Validate a request before sending.

        Raises:
            InvalidRequestError: If request is invalid
        """
        if not request.prompt or not request.prompt.strip():
            raise InvalidRequestError("Prompt cannot be empty", provider=self.name)
        if request.max_tokens is not None and request.max_tokens < 1:
            raise InvalidRequestError("max_tokens must be positive", provider=self.name, param="max_tokens")

    def get_model(self, requested: Optional[str] = None) -> str:
        return requested or self.default_model


__all__ = [
    "ChatMessage",
    "ChatRole",
    "GenerationProvider",
    "GenerationRequest",
    "GenerationResponse",
    "TokenUsage",
]
