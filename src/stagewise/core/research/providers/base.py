"""Abstract base class for search providers.

This module defines the SearchProvider interface that concrete web search
backends implement. The workflow only ever sees ``SearchProvider`` and
``SearchResult``, which keeps providers injectable and easy to mock.

Example usage:
    class TavilySearchProvider(SearchProvider):
        def get_provider_name(self) -> str:
            return "tavily"

        async def search(self, query: str, max_results: int = 10, **kwargs: Any) -> list[SearchResult]:
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class SearchResult:
    """Normalized search result from any provider.

    Attributes:
        url: URL of the search result
        title: Title or headline of the result
        text: Page text or snippet used for analysis
        author: Author name if the provider knows it
        published_date: Publication date if available
        favicon: Favicon URL of the result's site
        image: Representative image URL
        score: Relevance score from the search provider
        metadata: Additional provider-specific metadata
    """

    url: str
    title: Optional[str] = None
    text: str = ""
    author: Optional[str] = None
    published_date: Optional[datetime] = None
    favicon: Optional[str] = None
    image: Optional[str] = None
    score: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class SearchProvider(ABC):
    """Abstract base class for search providers.

    Subclasses should:
    - Implement get_provider_name() to return a unique identifier
    - Implement search() to execute queries against the provider
    - Raise SearchProviderError (or a subclass) on failure; the research
      phases catch it and treat the node as having no results
    """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the unique identifier for this provider.

        Returns:
            Provider name (e.g., "tavily", "exa")
        """
        ...

    @abstractmethod
    async def search(
        self,
        query: str,
        max_results: int = 10,
        **kwargs: Any,
    ) -> list[SearchResult]:
        """Execute a search query and return normalized results.

        Args:
            query: The search query string
            max_results: Maximum number of results to return (default: 10)
            **kwargs: Provider-specific options

        Returns:
            List of SearchResult objects, possibly empty

        Raises:
            SearchProviderError: If the search fails after retries
        """
        ...
