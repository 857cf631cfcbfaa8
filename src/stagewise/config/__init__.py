"""Configuration for stagewise.

Settings come from TOML files and ``STAGEWISE_*`` environment variables;
see :meth:`ResearchConfig.from_env` for the lookup order.
"""

from stagewise.config.research import ResearchConfig

__all__ = ["ResearchConfig"]
