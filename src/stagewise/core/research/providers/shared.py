"""Shared utilities for the HTTP-backed search providers.

Pure parsing helpers:
    - parse_retry_after(response) -> Optional[float]
    - extract_error_message(response) -> str
    - parse_iso_date(date_str) -> Optional[datetime]
    - extract_domain(url) -> Optional[str]

Request helpers:
    - raise_for_provider_status(response, provider_name)
    - parse_json_body(response, provider_name)
    - execute_with_retry(provider_name, func, ...)

SECURITY: error parsing redacts API keys; never put secrets in logs or
exception messages.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import urlparse

import httpx

from stagewise.core.errors.search import (
    AuthenticationError,
    RateLimitError,
    SearchProviderError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Regex to detect potential API keys / bearer tokens in strings
_SECRET_PATTERN = re.compile(
    r"(?i)"
    r"(?:"
    r"(?:api[_-]?key|token|bearer|authorization|secret|password|credential)"
    r"[\s:=]+"
    r")"
    r"['\"]?([^\s'\"]{8,})['\"]?",
)

# Common date formats tried after ISO 8601
_COMMON_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
)

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 60.0


def redact_secrets(text: str) -> str:
    """Remove API keys and sensitive tokens from a text string.

    Args:
        text: Input text that may contain secrets.

    Returns:
        Text with secrets replaced by ``"****"``.
    """
    if not text:
        return text

    def _replace(match: re.Match[str]) -> str:
        return match.group(0).replace(match.group(1), "****")

    return _SECRET_PATTERN.sub(_replace, text)


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Parse the ``Retry-After`` header from an HTTP response.

    Handles numeric values only; date-based values return ``None``.
    """
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass
    return None


def extract_error_message(response: httpx.Response) -> str:
    """Extract and redact an error message from an HTTP error response.

    Tries the ``{"error": ...}`` / ``{"message": ...}`` JSON shapes first and
    falls back to the first 200 characters of the body.
    """
    try:
        data = response.json()
        error_field = data.get("error")
        if isinstance(error_field, dict):
            msg = error_field.get("message", str(error_field))
        elif isinstance(error_field, str):
            msg = error_field
        else:
            msg = data.get("message", response.text[:200])
        return redact_secrets(str(msg))
    except Exception:
        text = response.text[:200] if response.text else "Unknown error"
        return redact_secrets(text)


def parse_iso_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse a date string, trying ISO 8601 first then common formats.

    Returns:
        Parsed datetime, or ``None`` if the value is empty or unparseable.
    """
    if not date_str:
        return None

    try:
        return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in _COMMON_DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue

    return None


def extract_domain(url: str) -> Optional[str]:
    """Extract the network location (domain) from a URL.

    Returns:
        The ``netloc`` component (e.g. ``"example.com"``), or ``None``.
    """
    if not url:
        return None
    try:
        parsed = urlparse(url)
        return parsed.netloc or None
    except ValueError:
        return None


def raise_for_provider_status(response: httpx.Response, provider_name: str) -> None:
    """Translate an HTTP error status into the search error hierarchy.

    Raises:
        AuthenticationError: On 401/403.
        RateLimitError: On 429.
        SearchProviderError: On any other status >= 400 (retryable for 5xx).
    """
    if response.status_code in (401, 403):
        raise AuthenticationError(
            provider=provider_name,
            message="Invalid API key",
        )

    if response.status_code == 429:
        raise RateLimitError(
            provider=provider_name,
            retry_after=parse_retry_after(response),
        )

    if response.status_code >= 400:
        error_msg = extract_error_message(response)
        raise SearchProviderError(
            provider=provider_name,
            message=f"API error {response.status_code}: {error_msg}",
            retryable=response.status_code >= 500,
        )


def parse_json_body(response: httpx.Response, provider_name: str) -> dict[str, Any]:
    """Decode a successful response body as a JSON object.

    Raises:
        SearchProviderError: If the body is not JSON or not an object
            (retryable; usually a truncated or proxied response).
    """
    try:
        data = response.json()
    except ValueError as e:
        raise SearchProviderError(
            provider=provider_name,
            message=redact_secrets(f"Invalid JSON response: {e}"),
            retryable=True,
            original_error=e,
        ) from e
    if not isinstance(data, dict):
        raise SearchProviderError(
            provider=provider_name,
            message=f"Unexpected response type: {type(data).__name__}",
            retryable=False,
        )
    return data

async def execute_with_retry(
    provider_name: str,
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> T:
    """Run ``func`` with exponential backoff and jitter on transient errors.

    Retries retryable ``SearchProviderError`` instances and httpx transport
    errors (timeouts, connection failures). Rate-limit errors wait at least
    the server's ``Retry-After`` hint.

    Raises:
        SearchProviderError: When retries are exhausted or the error is not
            retryable. Transport errors are wrapped with ``original_error`` set.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except SearchProviderError as e:
            if not e.retryable or attempt >= max_retries:
                raise
            delay = min(max_delay, base_delay * (2**attempt))
            if isinstance(e, RateLimitError) and e.retry_after:
                delay = max(delay, min(e.retry_after, max_delay))
            error: Exception = e
        except (httpx.TimeoutException, httpx.TransportError) as e:
            if attempt >= max_retries:
                raise SearchProviderError(
                    provider=provider_name,
                    message=redact_secrets(f"Request failed after retries: {e}"),
                    retryable=True,
                    original_error=e,
                ) from e
            delay = min(max_delay, base_delay * (2**attempt))
            error = e

        delay += random.uniform(0, delay * 0.1)
        attempt += 1
        logger.warning(
            "%s search failed (%s); retry %d/%d in %.1fs",
            provider_name,
            error,
            attempt,
            max_retries,
            delay,
        )
        await asyncio.sleep(delay)
