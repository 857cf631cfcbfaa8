"""Shared generation call lifecycle for deep research phase mixins.

Wraps provider calls with the configured timeout, maps timeouts onto
``LLMError`` so phases can degrade uniformly, and records token usage in the
session ledger.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Type, TypeVar

from pydantic import BaseModel

from stagewise.core.errors.llm import LLMError, StructuredOutputError
from stagewise.core.llm_provider import GenerationResponse
from stagewise.core.research.models.deep_research import ResearchSession, Stage
from stagewise.core.research.models.enums import AgentRole

if TYPE_CHECKING:
    from stagewise.core.research.workflows.deep_research.core import (
        DeepResearchWorkflow,
    )

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class GenerationLifecycleMixin:
    """Generation helpers. Mixed into DeepResearchWorkflow.

    At runtime, ``self`` is a DeepResearchWorkflow instance providing:
    - config, generation (instance attributes)
    """

    async def _with_timeout(self: DeepResearchWorkflow, operation: str, awaitable) -> GenerationResponse:
        timeout = self.config.generation_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise LLMError(
                f"{operation} timed out after {timeout}s",
                provider=self.generation.name,
                retryable=True,
            ) from e

    async def _generate_text(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        prompt: str,
        *,
        agent: AgentRole,
        operation: str,
        stage: Optional[Stage] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        """Generate free text and record its token usage.

        Raises:
            LLMError: On provider failure or timeout
        """
        response = await self._with_timeout(
            operation,
            self.generation.generate_text(
                prompt,
                system_prompt=system_prompt,
                temperature=self.config.temperature,
            ),
        )
        self._record_usage(session, response, agent=agent, operation=operation, stage=stage)
        return response.text

    async def _generate_structured(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        prompt: str,
        schema: Type[SchemaT],
        *,
        agent: AgentRole,
        operation: str,
        stage: Optional[Stage] = None,
        system_prompt: Optional[str] = None,
    ) -> SchemaT:
        """Generate a ``schema`` instance and record its token usage.

        Raises:
            LLMError: On provider failure, timeout or unparseable output
        """
        try:
            response = await self._with_timeout(
                operation,
                self.generation.generate_structured(
                    prompt,
                    schema,
                    system_prompt=system_prompt,
                    temperature=self.config.temperature,
                ),
            )
        except StructuredOutputError as e:
            # Failed attempts were still billed
            if e.usage is not None:
                spent = GenerationResponse(text="", usage=e.usage, model=e.model)
                self._record_usage(session, spent, agent=agent, operation=operation, stage=stage)
            raise
        self._record_usage(session, response, agent=agent, operation=operation, stage=stage)
        return response.parsed

    def _record_usage(
        self: DeepResearchWorkflow,
        session: ResearchSession,
        response: GenerationResponse,
        *,
        agent: AgentRole,
        operation: str,
        stage: Optional[Stage] = None,
    ) -> None:
        usage = response.usage
        session.token_usage.record(
            agent=agent.value,
            operation=operation,
            model=response.model or self.generation.get_model(),
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            reasoning_tokens=usage.reasoning_tokens,
            total_tokens=usage.total_tokens or None,
            stage_id=stage.id if stage is not None else None,
            stage_name=stage.name if stage is not None else "",
        )
