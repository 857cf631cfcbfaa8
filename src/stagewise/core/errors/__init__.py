"""Unified error hierarchy for stagewise.

Usage:
    # Import from domain modules for specificity
    from stagewise.core.errors.llm import LLMError, RateLimitError

    # Or import from the package with qualified aliases for disambiguation
    from stagewise.core.errors import LLMRateLimitError, SearchRateLimitError
"""

# --- LLM errors ---
from stagewise.core.errors.llm import (
    AuthenticationError as LLMAuthenticationError,
)
from stagewise.core.errors.llm import (
    InvalidRequestError,
    LLMError,
    StructuredOutputError,
)
from stagewise.core.errors.llm import (
    RateLimitError as LLMRateLimitError,
)

# --- Research session errors ---
from stagewise.core.errors.research import (
    ConfigurationInvalidError,
    ConfigurationMissingError,
    NoStageAnalysesError,
    ResearchCancelledError,
    ResearchEngineError,
    StageIndexInvalidError,
    StepLimitExceededError,
    TreeUninitializedError,
)

# --- Search provider errors ---
from stagewise.core.errors.search import (
    AuthenticationError as SearchAuthenticationError,
)
from stagewise.core.errors.search import (
    RateLimitError as SearchRateLimitError,
)
from stagewise.core.errors.search import (
    SearchProviderError,
)

__all__ = [
    # LLM
    "LLMError",
    "LLMRateLimitError",
    "LLMAuthenticationError",
    "InvalidRequestError",
    "StructuredOutputError",
    # Research
    "ResearchEngineError",
    "ConfigurationMissingError",
    "ConfigurationInvalidError",
    "StageIndexInvalidError",
    "TreeUninitializedError",
    "NoStageAnalysesError",
    "StepLimitExceededError",
    "ResearchCancelledError",
    # Search
    "SearchProviderError",
    "SearchRateLimitError",
    "SearchAuthenticationError",
]
