"""ResearchConfig loading logic.

Provides ``_ResearchConfigLoader``, a mixin whose methods are inherited by
``ResearchConfig`` (defined in ``research.py``). Keeping the TOML and
environment handling here leaves ``research.py`` focused on field
definitions and simple accessors.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, cast

if TYPE_CHECKING:
    from stagewise.config.research import ResearchConfig

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from stagewise.config.parsing import (
    _normalize_search_provider,
    _parse_bool,
    _parse_float,
    _parse_int,
)

logger = logging.getLogger(__name__)

_CONFIG_FILE_ENV_VAR = "STAGEWISE_CONFIG_FILE"

# Integer settings accepted from TOML ``[research]`` and ``STAGEWISE_*`` env vars.
_INT_FIELDS = (
    "max_concurrent",
    "max_steps",
    "node_max_attempts",
    "max_retries",
    "default_max_depth",
    "default_max_breadth",
    "default_stage_count",
    "default_queries_per_stage",
)
_FLOAT_FIELDS = ("temperature", "search_timeout", "generation_timeout")


class _ResearchConfigLoader:
    """Mixin providing config-loading methods for ``ResearchConfig``.

    At runtime ``self`` is always a ``ResearchConfig`` instance.
    """

    if TYPE_CHECKING:
        search_provider: str
        model: str
        tavily_api_key: Optional[str]
        exa_api_key: Optional[str]
        openai_api_key: Optional[str]
        openai_base_url: Optional[str]
        self_discover: bool
        log_level: str
        structured_logging: bool

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ResearchConfig":
        """Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. Project TOML config (./stagewise.toml or ./.stagewise.toml)
        3. User TOML config (~/.stagewise.toml)
        4. XDG config (~/.config/stagewise/config.toml)
        5. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get(_CONFIG_FILE_ENV_VAR)
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
            xdg_config = Path(xdg_config_home) / "stagewise" / "config.toml"
            if xdg_config.exists():
                config._load_toml(xdg_config)
                logger.debug("Loaded XDG config from %s", xdg_config)

            home_config = Path.home() / ".stagewise.toml"
            if home_config.exists():
                config._load_toml(home_config)
                logger.debug("Loaded user config from %s", home_config)

            project_config = Path("stagewise.toml")
            if project_config.exists():
                config._load_toml(project_config)
                logger.debug("Loaded project config from %s", project_config)
            else:
                hidden_config = Path(".stagewise.toml")
                if hidden_config.exists():
                    config._load_toml(hidden_config)
                    logger.debug("Loaded project config from %s", hidden_config)

        config._load_env()
        return cast("ResearchConfig", config)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from a TOML file.

        Recognizes a ``[research]`` table for engine settings and a
        ``[logging]`` table with ``level`` and ``structured``.
        """
        if not path.exists():
            logger.warning("Config file not found: %s", path)
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return

        if "research" in data:
            self._apply_mapping(data["research"], source=str(path))

        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = str(log["level"]).upper()
            if "structured" in log:
                self.structured_logging = _parse_bool(log["structured"])

    def _apply_mapping(self, data: Dict[str, Any], *, source: str) -> None:
        defaults = type(self)()
        for name in _INT_FIELDS:
            if name in data:
                minimum = 0 if name == "max_retries" else 1
                value = _parse_int(data[name], getattr(defaults, name), name=f"{source}: {name}", minimum=minimum)
                setattr(self, name, value)
        for name in _FLOAT_FIELDS:
            if name in data:
                value = _parse_float(
                    data[name],
                    getattr(defaults, name),
                    name=f"{source}: {name}",
                    allow_zero=name == "temperature",
                )
                setattr(self, name, value)
        if "search_provider" in data:
            self.search_provider = _normalize_search_provider(str(data["search_provider"]))
        if "self_discover" in data:
            self.self_discover = _parse_bool(data["self_discover"])
        for name in ("model", "tavily_api_key", "exa_api_key", "openai_api_key", "openai_base_url"):
            if name in data and data[name]:
                setattr(self, name, str(data[name]))

    def _load_env(self) -> None:
        """Apply ``STAGEWISE_*`` overrides and provider API key variables."""
        prefixed = {
            key[len("STAGEWISE_"):].lower(): value
            for key, value in os.environ.items()
            if key.startswith("STAGEWISE_") and key != _CONFIG_FILE_ENV_VAR
        }
        if prefixed:
            self._apply_mapping(prefixed, source="environment")

        if level := os.environ.get("STAGEWISE_LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := os.environ.get("STAGEWISE_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        # Standard provider variables; explicit config wins
        if not self.tavily_api_key and os.environ.get("TAVILY_API_KEY"):
            self.tavily_api_key = os.environ["TAVILY_API_KEY"]
        if not self.exa_api_key and os.environ.get("EXA_API_KEY"):
            self.exa_api_key = os.environ["EXA_API_KEY"]
        if not self.openai_api_key and os.environ.get("OPENAI_API_KEY"):
            self.openai_api_key = os.environ["OPENAI_API_KEY"]
        if not self.openai_base_url and os.environ.get("OPENAI_BASE_URL"):
            self.openai_base_url = os.environ["OPENAI_BASE_URL"]
