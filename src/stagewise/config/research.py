"""Research engine configuration.

Contains ResearchConfig, the settings dataclass shared by the workflow
driver, the providers and the CLI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from stagewise.config.loader import _ResearchConfigLoader

if TYPE_CHECKING:
    from stagewise.core.research.models.deep_research import ResearchConfiguration

logger = logging.getLogger(__name__)


@dataclass
class ResearchConfig(_ResearchConfigLoader):
    """Configuration for the deep research engine.

    Attributes:
        search_provider: Web search backend ("tavily" or "exa")
        model: Chat model used for every generation call
        temperature: Sampling temperature for free-text generation
        tavily_api_key: API key for Tavily (falls back to TAVILY_API_KEY)
        exa_api_key: API key for Exa (falls back to EXA_API_KEY)
        openai_api_key: API key for OpenAI (falls back to OPENAI_API_KEY)
        openai_base_url: Optional OpenAI-compatible endpoint
        max_concurrent: Upper bound on concurrent provider calls within one step
        max_steps: Safety cap on workflow steps per session
        node_max_attempts: Research attempts per node when the search provider fails
        self_discover: Whether stage planning runs the reasoning-module selection pass
        search_timeout: Per-request timeout for search providers (seconds)
        generation_timeout: Per-request timeout for the generation provider (seconds)
        max_retries: Retries for transient provider errors
        default_max_depth: Request default for ``maxDepth``
        default_max_breadth: Request default for ``maxBreadth``
        default_stage_count: Request default for ``stageCount``
        default_queries_per_stage: Request default for ``queriesPerStage``
        log_level: Logging level name
        structured_logging: Emit JSON-style log lines
    """

    search_provider: str = "tavily"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    tavily_api_key: Optional[str] = None
    exa_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    max_concurrent: int = 5
    max_steps: int = 200
    node_max_attempts: int = 2
    self_discover: bool = True
    search_timeout: float = 30.0
    generation_timeout: float = 120.0
    max_retries: int = 3
    default_max_depth: int = 2
    default_max_breadth: int = 3
    default_stage_count: int = 3
    default_queries_per_stage: int = 3
    log_level: str = "INFO"
    structured_logging: bool = False

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ResearchConfig":
        """Create config from a TOML dict (typically the [research] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            ResearchConfig instance
        """
        config = cls()
        config._apply_mapping(data, source="[research]")
        return config

    def get_search_api_key(self) -> Optional[str]:
        """Return the API key for the configured search provider, if any."""
        if self.search_provider == "exa":
            return self.exa_api_key
        return self.tavily_api_key

    def default_configuration(self, **overrides: Any) -> "ResearchConfiguration":
        """Build a request configuration from the configured defaults.

        Args:
            **overrides: Snake-case field values that win over the defaults;
                ``None`` values are ignored.

        Raises:
            ConfigurationInvalidError: If a value is outside the supported bounds.
        """
        from stagewise.core.research.models.deep_research import ResearchConfiguration

        values: Dict[str, Any] = {
            "max_depth": self.default_max_depth,
            "max_breadth": self.default_max_breadth,
            "stage_count": self.default_stage_count,
            "queries_per_stage": self.default_queries_per_stage,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ResearchConfiguration.from_request(values)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.structured_logging:
            # JSON-style structured logging
            formatter = logging.Formatter(
                '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
            )
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        root_logger = logging.getLogger("stagewise")
        root_logger.setLevel(level)
        if not root_logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)
        else:
            for handler in root_logger.handlers:
                handler.setFormatter(formatter)
