"""Tavily search provider for web search.

This module implements TavilySearchProvider, which wraps the Tavily Search API
to provide web search for the reasoning-tree researcher.

Tavily API documentation: https://docs.tavily.com/

Error Handling:
    - 429: Retryable, honors Retry-After
    - 401/403: Not retryable
    - 5xx: Retryable
    - Timeouts / connection errors: Retryable

Example usage:
    provider = TavilySearchProvider(api_key="tvly-...")
    results = await provider.search("machine learning trends", max_results=5)
"""

import logging
import os
from typing import Any, Optional

import httpx

from stagewise.core.research.providers.base import (
    SearchProvider,
    SearchResult,
)
from stagewise.core.research.providers.shared import (
    execute_with_retry,
    parse_iso_date,
    parse_json_body,
    raise_for_provider_status,
)

logger = logging.getLogger(__name__)

# Tavily API constants
TAVILY_API_BASE_URL = "https://api.tavily.com"
TAVILY_SEARCH_ENDPOINT = "/search"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
TAVILY_MAX_RESULTS = 20

VALID_SEARCH_DEPTHS = frozenset(["basic", "advanced", "fast", "ultra_fast"])


class TavilySearchProvider(SearchProvider):
    """Tavily Search API provider for web search.

    Attributes:
        api_key: Tavily API key (required)
        base_url: API base URL (default: https://api.tavily.com)
        timeout: Request timeout in seconds (default: 30.0)
        max_retries: Maximum retry attempts for transient errors (default: 3)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = TAVILY_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        search_depth: str = "basic",
    ):
        """Initialize Tavily search provider.

        Args:
            api_key: Tavily API key. If not provided, reads from TAVILY_API_KEY env var.
            base_url: API base URL (default: https://api.tavily.com)
            timeout: Request timeout in seconds (default: 30.0)
            max_retries: Maximum retry attempts (default: 3)
            search_depth: One of "basic", "advanced", "fast", "ultra_fast"

        Raises:
            ValueError: If no API key is available or search_depth is unknown
        """
        self._api_key = api_key or os.environ.get("TAVILY_API_KEY")
        if not self._api_key:
            raise ValueError(
                "Tavily API key required. Provide via api_key parameter "
                "or TAVILY_API_KEY environment variable."
            )
        if search_depth not in VALID_SEARCH_DEPTHS:
            raise ValueError(
                f"Invalid search_depth '{search_depth}'. "
                f"Must be one of: {', '.join(sorted(VALID_SEARCH_DEPTHS))}"
            )

        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._search_depth = search_depth

    def get_provider_name(self) -> str:
        return "tavily"

    async def search(
        self,
        query: str,
        max_results: int = 10,
        *,
        include_raw_content: bool = False,
        **kwargs: Any,
    ) -> list[SearchResult]:
        """Execute a web search via Tavily API.

        Args:
            query: The search query string
            max_results: Maximum number of results to return (clamped to 20)
            include_raw_content: Ask Tavily for full page text instead of the
                content snippet
            **kwargs: Ignored; accepted for interface compatibility

        Returns:
            List of SearchResult objects

        Raises:
            AuthenticationError: If API key is invalid.
            RateLimitError: If rate limit exceeded after all retries.
            SearchProviderError: For other API errors.
        """
        payload: dict[str, Any] = {
            "query": query,
            "max_results": min(max_results, TAVILY_MAX_RESULTS),
            "search_depth": self._search_depth,
            "include_answer": False,
            "include_raw_content": "text" if include_raw_content else False,
            "include_images": True,
            "include_favicon": True,
        }

        response_data = await self._execute_with_retry(payload)
        return self._parse_response(response_data)

    async def _execute_with_retry(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}{TAVILY_SEARCH_ENDPOINT}"
        headers = {"Authorization": f"Bearer {self._api_key}"}

        async def make_request() -> dict[str, Any]:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
                raise_for_provider_status(response, "tavily")
                return parse_json_body(response, "tavily")

        return await execute_with_retry(
            "tavily",
            make_request,
            max_retries=self._max_retries,
        )

    def _parse_response(self, data: dict[str, Any]) -> list[SearchResult]:
        """Parse Tavily API response into SearchResult objects.

        Tavily returns images at the response level, so the n-th image (when
        present) is attached to the n-th result.
        """
        results: list[SearchResult] = []
        images = [img if isinstance(img, str) else img.get("url") for img in data.get("images") or []]

        for index, item in enumerate(data.get("results", [])):
            url = item.get("url")
            if not url:
                continue
            results.append(
                SearchResult(
                    url=url,
                    title=item.get("title"),
                    text=item.get("raw_content") or item.get("content") or "",
                    published_date=parse_iso_date(item.get("published_date")),
                    favicon=item.get("favicon"),
                    image=images[index] if index < len(images) else None,
                    score=item.get("score"),
                    metadata={"tavily_score": item.get("score")},
                )
            )

        logger.debug("Tavily returned %d results", len(results))
        return results
