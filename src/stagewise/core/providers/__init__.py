"""Concrete generation providers."""

from stagewise.core.providers.openai_provider import OpenAIGenerationProvider

__all__ = ["OpenAIGenerationProvider"]
