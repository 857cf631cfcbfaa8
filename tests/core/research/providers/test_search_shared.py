"""Tests for the shared search provider helpers and the provider factory."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from stagewise.core.errors.search import (
    AuthenticationError,
    RateLimitError,
    SearchProviderError,
)
from stagewise.core.research.providers import (
    ExaSearchProvider,
    TavilySearchProvider,
    create_search_provider,
)
from stagewise.core.research.providers.shared import (
    execute_with_retry,
    extract_domain,
    extract_error_message,
    parse_iso_date,
    parse_json_body,
    parse_retry_after,
    raise_for_provider_status,
    redact_secrets,
)
from tests.core.research.providers.conftest import make_mock_response, patch_async_client

SLEEP_TARGET = "stagewise.core.research.providers.shared.asyncio.sleep"


class TestParsing:
    def test_redact_secrets(self):
        redacted = redact_secrets("request failed: api_key=sk-abcdef123456 rejected")
        assert "sk-abcdef123456" not in redacted
        assert "****" in redacted

    def test_redact_leaves_plain_text(self):
        assert redact_secrets("nothing to hide") == "nothing to hide"

    def test_parse_retry_after(self):
        assert parse_retry_after(make_mock_response(headers={"Retry-After": "12"})) == 12.0
        assert parse_retry_after(make_mock_response(headers={"Retry-After": "soon"})) is None
        assert parse_retry_after(make_mock_response()) is None

    def test_extract_error_message_falls_back_to_text(self):
        response = make_mock_response(status_code=502, text="Bad gateway", raise_json=True)
        assert extract_error_message(response) == "Bad gateway"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-01-15", datetime(2024, 1, 15)),
            ("2024/01/15", datetime(2024, 1, 15)),
            ("January 15, 2024", datetime(2024, 1, 15)),
            ("not a date", None),
            (None, None),
        ],
    )
    def test_parse_iso_date(self, value, expected):
        assert parse_iso_date(value) == expected

    def test_extract_domain(self):
        assert extract_domain("https://www.example.com/path?q=1") == "www.example.com"
        assert extract_domain("") is None
        assert extract_domain("not-a-url") is None


class TestRaiseForStatus:
    def test_success_passes(self):
        raise_for_provider_status(make_mock_response(), "tavily")

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth(self, status):
        with pytest.raises(AuthenticationError):
            raise_for_provider_status(make_mock_response(status_code=status), "tavily")

    def test_rate_limit(self):
        response = make_mock_response(status_code=429, headers={"Retry-After": "3"})
        with pytest.raises(RateLimitError) as exc_info:
            raise_for_provider_status(response, "exa")
        assert exc_info.value.retry_after == 3.0
        assert exc_info.value.retryable

    def test_server_error_is_retryable(self):
        response = make_mock_response(status_code=500, json_data={"message": "boom"})
        with pytest.raises(SearchProviderError) as exc_info:
            raise_for_provider_status(response, "exa")
        assert exc_info.value.retryable
        assert "API error 500: boom" in str(exc_info.value)


class TestParseJsonBody:
    def test_object_is_returned(self):
        assert parse_json_body(make_mock_response(json_data={"results": []}), "exa") == {"results": []}

    def test_invalid_json_is_retryable(self):
        with pytest.raises(SearchProviderError) as exc_info:
            parse_json_body(make_mock_response(raise_json=True), "exa")
        assert exc_info.value.retryable
        assert exc_info.value.provider == "exa"
        assert isinstance(exc_info.value.original_error, ValueError)
        assert "Invalid JSON response" in str(exc_info.value)

    def test_non_object_body_is_rejected(self):
        with pytest.raises(SearchProviderError, match="Unexpected response type: list") as exc_info:
            parse_json_body(make_mock_response(json_data=[{"url": "https://example.com"}]), "tavily")
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_provider_search_wraps_undecodable_body(self, provider):
        patcher, _ = patch_async_client(make_mock_response(raise_json=True))
        with patcher, pytest.raises(SearchProviderError, match="Invalid JSON response"):
            await provider.search("battery recycling")


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        func = AsyncMock(side_effect=[SearchProviderError("tavily", "flaky", retryable=True), {"ok": True}])
        with patch(SLEEP_TARGET, new_callable=AsyncMock) as mock_sleep:
            result = await execute_with_retry("tavily", func, max_retries=2, base_delay=0.5)
        assert result == {"ok": True}
        assert func.await_count == 2
        delay = mock_sleep.await_args.args[0]
        assert 0.5 <= delay <= 0.55

    @pytest.mark.asyncio
    async def test_rate_limit_waits_for_hint(self):
        func = AsyncMock(side_effect=[RateLimitError("tavily", retry_after=10), "done"])
        with patch(SLEEP_TARGET, new_callable=AsyncMock) as mock_sleep:
            await execute_with_retry("tavily", func, max_retries=1)
        assert mock_sleep.await_args.args[0] >= 10

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        func = AsyncMock(side_effect=AuthenticationError("tavily"))
        with patch(SLEEP_TARGET, new_callable=AsyncMock) as mock_sleep, pytest.raises(AuthenticationError):
            await execute_with_retry("tavily", func, max_retries=3)
        mock_sleep.assert_not_awaited()
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_wrapped(self):
        func = AsyncMock(side_effect=httpx.ConnectTimeout("timed out"))
        with patch(SLEEP_TARGET, new_callable=AsyncMock), pytest.raises(SearchProviderError) as exc_info:
            await execute_with_retry("exa", func, max_retries=1)
        assert func.await_count == 2
        assert isinstance(exc_info.value.original_error, httpx.ConnectTimeout)
        assert exc_info.value.provider == "exa"


class TestFactory:
    def test_creates_named_provider(self):
        assert isinstance(create_search_provider("tavily", "tvly-key"), TavilySearchProvider)
        assert isinstance(create_search_provider("exa", "exa-key"), ExaSearchProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown search provider 'bing'"):
            create_search_provider("bing", "key")

    def test_missing_key_propagates(self, monkeypatch):
        monkeypatch.delenv("EXA_API_KEY", raising=False)
        with pytest.raises(ValueError, match="Exa API key"):
            create_search_provider("exa")
