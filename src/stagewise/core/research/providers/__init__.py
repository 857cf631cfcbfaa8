"""Search providers for the deep research workflow."""

from typing import Optional

from stagewise.core.research.providers.base import SearchProvider, SearchResult
from stagewise.core.research.providers.exa import ExaSearchProvider
from stagewise.core.research.providers.tavily import TavilySearchProvider

_PROVIDERS = {
    "tavily": TavilySearchProvider,
    "exa": ExaSearchProvider,
}


def create_search_provider(
    name: str,
    api_key: Optional[str] = None,
    *,
    timeout: float = 30.0,
    max_retries: int = 3,
) -> SearchProvider:
    """Instantiate a search provider by name.

    Raises:
        ValueError: If the name is unknown or the provider has no API key.
    """
    try:
        provider_cls = _PROVIDERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown search provider '{name}'. Available: {', '.join(sorted(_PROVIDERS))}"
        ) from None
    return provider_cls(api_key=api_key, timeout=timeout, max_retries=max_retries)


__all__ = [
    "ExaSearchProvider",
    "SearchProvider",
    "SearchResult",
    "TavilySearchProvider",
    "create_search_provider",
]
