"""Base async HTTP client for variant sources and identity providers.

All source clients inherit from this base to ensure consistent behavior:
- Async/await for non-blocking I/O
- Connection pooling for the lifetime of one adapter call
- Bounded per-request timeout
- Every transport failure surfaces as APIProviderError

Requests are never retried here. Retrying is a caller-level policy.

Usage:
    class MySourceClient(BaseAsyncClient):
        def __init__(self, base_url: str, token: str):
            super().__init__(
                base_url=base_url,
                headers={"Authorization": f"Bearer {token}"},
            )

        async def get_variants(self, gene: str) -> list[dict]:
            return await self.get("/variants", params={"gene": gene})
"""

import logging
from typing import Any

import httpx


logger = logging.getLogger(__name__)


class APIProviderError(Exception):
    """Base exception for source and identity provider errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class BaseAsyncClient:
    """Base async HTTP client with connection pooling and error mapping.

    Args:
        base_url: Base URL for all requests
        headers: Default headers for all requests
        timeout: Request timeout in seconds (default: 30)
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseAsyncClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
        json_data: Any = None,
        form_data: dict[str, Any] | None = None,
    ) -> Any:
        """Make one HTTP request and decode its JSON body.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Path relative to base_url ('' targets base_url itself)
            params: Query parameters (a list of pairs allows repeated keys)
            json_data: JSON body
            form_data: URL-encoded form body

        Returns:
            Parsed JSON response

        Raises:
            APIProviderError: On HTTP >= 400, invalid JSON, timeout or network error
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with context manager.")

        if endpoint and not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"

        logger.debug("%s %s%s params=%s", method, self.base_url, endpoint, params)

        try:
            response = await self._client.request(
                method=method,
                url=endpoint or self.base_url,
                params=params,
                json=json_data,
                data=form_data,
            )
        except httpx.TimeoutException as e:
            logger.error("Request timeout for %s%s: %s", self.base_url, endpoint, e)
            raise APIProviderError(f"Request timeout: {e}") from e
        except httpx.NetworkError as e:
            logger.error("Network error for %s%s: %s", self.base_url, endpoint, e)
            raise APIProviderError(f"Network error: {e}") from e
        except httpx.HTTPError as e:
            logger.error("HTTP error for %s%s: %s", self.base_url, endpoint, e)
            raise APIProviderError(f"HTTP error: {e}") from e

        logger.debug("Response: %d for %s", response.status_code, endpoint)

        if response.status_code >= 400:
            error_body = response.text[:500]
            logger.error(
                "API error: %d %s%s - %s",
                response.status_code, self.base_url, endpoint, error_body,
            )
            raise APIProviderError(
                message=response.reason_phrase or f"API request failed: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error("Failed to parse JSON response: %s", e)
            raise APIProviderError(
                message=f"Invalid JSON response: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from e

    async def get(
        self,
        endpoint: str,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
    ) -> Any:
        """Convenience method for GET requests."""
        return await self._request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
        form_data: dict[str, Any] | None = None,
    ) -> Any:
        """Convenience method for POST requests."""
        return await self._request(
            "POST", endpoint, params=params, json_data=json_data, form_data=form_data
        )
