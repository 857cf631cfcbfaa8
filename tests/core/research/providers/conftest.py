"""Shared test fixtures for search provider tests.

Provides provider factories and a mock response builder used across the
provider test files.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

PROVIDERS = ["tavily", "exa"]


def make_tavily(**kwargs):
    from stagewise.core.research.providers.tavily import TavilySearchProvider

    return TavilySearchProvider(api_key="tvly-test-key", **kwargs)


def make_exa(**kwargs):
    from stagewise.core.research.providers.exa import ExaSearchProvider

    return ExaSearchProvider(api_key="exa-test-key", **kwargs)


FACTORY_MAP = {
    "tavily": make_tavily,
    "exa": make_exa,
}


@pytest.fixture(params=PROVIDERS)
def provider(request):
    """Parametrized fixture yielding each provider instance (no retries)."""
    return FACTORY_MAP[request.param](max_retries=0)


# ---------------------------------------------------------------------------
# Mock response builder
# ---------------------------------------------------------------------------


def make_mock_response(
    *,
    status_code: int = 200,
    headers: dict | None = None,
    json_data: dict | None = None,
    text: str = "",
    raise_json: bool = False,
) -> MagicMock:
    """Build a mock httpx.Response for provider tests.

    Args:
        status_code: HTTP status code.
        headers: Response headers dict.
        json_data: JSON body (returned by response.json()).
        text: Plain text body.
        raise_json: If True, response.json() raises ValueError.
    """
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text

    if raise_json:
        response.json.side_effect = ValueError("No JSON")
    elif json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.return_value = {}

    return response


def patch_async_client(*responses):
    """Patch ``httpx.AsyncClient`` so successive posts return ``responses``.

    Returns:
        (patcher, mock_client); start the patcher with ``with``.
    """
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(side_effect=list(responses))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    return patch("httpx.AsyncClient", return_value=mock_client), mock_client
