"""
Shared httpx plumbing for Glimpse providers.

Error-body extraction and status-code mapping used by every HTTP backend.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

import httpx

from glimpse.core.errors import AuthenticationError, ProviderError, RateLimitError


class HTTPProviderMixin:
    """Lazily-created ``httpx.AsyncClient`` plus error mapping.

    Subclasses set ``base_url``, ``timeout`` and ``headers`` and may pass a
    custom ``transport`` (tests use ``httpx.MockTransport``).
    """

    base_url: str
    timeout: float
    _client: Optional[httpx.AsyncClient] = None
    _transport: Optional[httpx.AsyncBaseTransport] = None

    @property
    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _extract_error_message(self, response: httpx.Response) -> str:
        """Pull a readable message out of JSON, HTML or plain-text errors."""
        try:
            error_data = response.json()
            error = error_data.get("error", error_data)
            if isinstance(error, dict):
                return str(error.get("message", error))
            return str(error)
        except (json.JSONDecodeError, AttributeError):
            text = response.text or ""
            content_type = response.headers.get("content-type", "").lower()

            if "text/html" in content_type or text.lstrip().lower().startswith(("<!doctype", "<html")):
                title_match = re.search(r"<title[^>]*>(.*?)</title>", text, re.IGNORECASE | re.DOTALL)
                if title_match:
                    return title_match.group(1).strip()
                return f"HTTP {response.status_code}: Server returned HTML error page"

            return text[:500] if text else f"HTTP {response.status_code}"

    def _handle_error(self, response: httpx.Response) -> None:
        """Raise the provider error matching an HTTP error response."""
        error_message = self._extract_error_message(response)

        if response.status_code == 401:
            raise AuthenticationError(
                f"Authentication failed: {error_message}",
                status_code=response.status_code,
            )
        if response.status_code == 429:
            raise RateLimitError(
                f"Rate limit exceeded: {error_message}",
                status_code=response.status_code,
            )
        raise ProviderError(
            f"API error: {error_message}",
            status_code=response.status_code,
        )

    async def _post(self, endpoint: str, data: dict[str, Any]) -> dict[str, Any]:
        """POST JSON and return the decoded body.

        Raises:
            ProviderError: On transport failure, HTTP error or non-JSON body
        """
        client = await self._get_client()
        try:
            response = await client.post(endpoint, json=data)
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {self.base_url}{endpoint} failed: {e}") from e

        if response.status_code >= 400:
            self._handle_error(response)

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"Invalid JSON from {self.base_url}{endpoint}",
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise ProviderError(
                f"Unexpected response shape from {self.base_url}{endpoint}",
                status_code=response.status_code,
            )
        return body
