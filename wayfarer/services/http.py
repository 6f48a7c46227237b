"""Shared HTTP client for vendor adapters.

Every adapter fetches JSON through ``VendorHttpClient.get_json``, which
always runs the request through ``retry_with_backoff``. A single
``httpx.AsyncClient`` is created lazily and reused for connection pooling.
"""

import logging
from typing import Any

import httpx

from wayfarer.resilience.clock import Clock
from wayfarer.resilience.retry import RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)


class VendorHttpClient:
    """Thin wrapper around a shared ``httpx.AsyncClient``.

    Args:
        timeout: Per-request timeout in seconds. A timeout counts as a
            network error and is retried.
        clock: Provides the sleep used between retries.
        transport: Optional transport override (``httpx.MockTransport`` in
            tests).
        retry_config: Default backoff settings for every request.
    """

    HEADERS = {
        "User-Agent": "Wayfarer/0.1 (travel itinerary planner)",
        "Accept": "application/json",
    }

    def __init__(
        self,
        timeout: float = 10.0,
        clock: Clock | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._timeout = timeout
        self._clock = clock or Clock()
        self._transport = transport
        self._retry_config = retry_config or RetryConfig()
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=self.HEADERS,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        vendor: str | None = None,
        retry: RetryConfig | None = None,
    ) -> Any:
        """GET ``url`` and decode the JSON body, retrying transient failures.

        Raises:
            UpstreamError: The request failed (classified by kind).
        """
        client = self._get_client()

        async def attempt() -> Any:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()

        return await retry_with_backoff(
            attempt,
            retry or self._retry_config,
            sleep=self._clock.sleep,
            now=self._clock.now,
            vendor=vendor,
        )
