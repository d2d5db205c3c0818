"""
Shared async HTTP plumbing for upstream JSON APIs.

BaseApiClient owns an httpx.AsyncClient and turns every failure
(non-2xx status, transport error, undecodable body) into an
ExternalAPIError. Requests are never retried; the caller decides whether
a failed source aborts its run or is only counted.

Usage:
    class MyClient(BaseApiClient):
        BASE_URL = "https://api.example.com"

        async def get_data(self) -> list:
            return await self._get("/data")
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ExternalAPIError(Exception):
    """An upstream request did not produce a usable JSON body."""

    def __init__(
        self,
        message: str,
        code: str = "EXTERNAL_API_ERROR",
        status_code: int = 502,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class RateLimitError(ExternalAPIError):
    """Upstream answered 429."""

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message, code="RATE_LIMITED", status_code=429)
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Base client
# ---------------------------------------------------------------------------

class BaseApiClient:
    """
    Async JSON client base.

    Subclasses set BASE_URL and add endpoint methods. Use as an async
    context manager, or call ``close()`` yourself; the underlying
    httpx client is created on first use either way.
    """

    BASE_URL: str = ""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET ``path`` and return the decoded JSON body.

        Raises:
            RateLimitError: On 429
            ExternalAPIError: On any other non-2xx status, a transport
                failure, or a body that is not JSON
        """
        try:
            response = await self.client.get(path, params=params)
        except httpx.RequestError as e:
            logger.warning("GET %s failed: %s", path, e)
            raise ExternalAPIError(f"Request to {path} failed: {e}") from e

        status = response.status_code
        if status == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                f"Rate limited on {path}",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if not response.is_success:
            logger.warning("GET %s returned HTTP %d", path, status)
            raise ExternalAPIError(
                f"HTTP {status} for {path}: {response.text[:200]}",
                status_code=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ExternalAPIError(f"Invalid JSON from {path}: {e}") from e
