"""Exa search provider for web search.

Wraps the Exa ``/search`` endpoint with inline page contents, which returns
author, publication date, favicon and image alongside the page text.

Exa API documentation: https://docs.exa.ai/

Example usage:
    provider = ExaSearchProvider(api_key="...")
    results = await provider.search("battery recycling economics", max_results=6)
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

EXA_API_BASE_URL = "https://api.exa.ai"
EXA_SEARCH_ENDPOINT = "/search"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
EXA_MAX_RESULTS = 100


class ExaSearchProvider(SearchProvider):
    """Exa Search API provider.

    Attributes:
        api_key: Exa API key (required)
        base_url: API base URL (default: https://api.exa.ai)
        timeout: Request timeout in seconds (default: 30.0)
        max_retries: Maximum retry attempts for transient errors (default: 3)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = EXA_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        """Initialize Exa search provider.

        Args:
            api_key: Exa API key. If not provided, reads from EXA_API_KEY env var.
            base_url: API base URL
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts

        Raises:
            ValueError: If no API key is provided or found in environment
        """
        self._api_key = api_key or os.environ.get("EXA_API_KEY")
        if not self._api_key:
            raise ValueError(
                "Exa API key required. Provide via api_key parameter "
                "or EXA_API_KEY environment variable."
            )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries

    def get_provider_name(self) -> str:
        return "exa"

    async def search(
        self,
        query: str,
        max_results: int = 10,
        **kwargs: Any,
    ) -> list[SearchResult]:
        """Execute a web search via Exa with page text included.

        Args:
            query: The search query string
            max_results: Maximum number of results to return
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
            "numResults": min(max_results, EXA_MAX_RESULTS),
            "contents": {"text": True},
        }
        url = f"{self._base_url}{EXA_SEARCH_ENDPOINT}"
        headers = {"x-api-key": self._api_key or "", "Content-Type": "application/json"}

        async def make_request() -> dict[str, Any]:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
                raise_for_provider_status(response, "exa")
                return parse_json_body(response, "exa")

        data = await execute_with_retry("exa", make_request, max_retries=self._max_retries)
        return self._parse_response(data)

    def _parse_response(self, data: dict[str, Any]) -> list[SearchResult]:
        results: list[SearchResult] = []
        for item in data.get("results", []):
            url = item.get("url")
            if not url:
                continue
            results.append(
                SearchResult(
                    url=url,
                    title=item.get("title"),
                    text=item.get("text") or "",
                    author=item.get("author") or None,
                    published_date=parse_iso_date(item.get("publishedDate")),
                    favicon=item.get("favicon"),
                    image=item.get("image"),
                    score=item.get("score"),
                    metadata={"exa_id": item.get("id")},
                )
            )
        logger.debug("Exa returned %d results", len(results))
        return results
