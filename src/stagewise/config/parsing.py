"""Parsing and normalization helpers for configuration values."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

_VALID_SEARCH_PROVIDERS = {"tavily", "exa"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_int(value: Any, default: int, *, name: str, minimum: int = 1) -> int:
    """Parse a positive integer setting, warning and falling back on bad input."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s: %r. Using default %s", name, value, default)
        return default
    if parsed < minimum:
        logger.warning("%s must be >= %s, got %s. Using default %s", name, minimum, parsed, default)
        return default
    return parsed


def _parse_float(value: Any, default: float, *, name: str, allow_zero: bool = False) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid number for %s: %r. Using default %s", name, value, default)
        return default
    if parsed < 0 or (parsed == 0 and not allow_zero):
        logger.warning("%s must be positive, got %s. Using default %s", name, parsed, default)
        return default
    return parsed


def _normalize_search_provider(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in _VALID_SEARCH_PROVIDERS:
        logger.warning(
            "Invalid search provider '%s'. Falling back to 'tavily'. Valid options: %s",
            value,
            ", ".join(sorted(_VALID_SEARCH_PROVIDERS)),
        )
        return "tavily"
    return normalized
