"""httpx adapter for the outbound HTTP client port."""

from collections.abc import Mapping
from typing import Any

import httpx

from vitalwatch.core.ports import HttpResponse


class HttpxClient:
    """HttpClientPort implementation over httpx.AsyncClient.

    Transport errors (connection refused, DNS failure, timeouts) propagate as
    httpx exceptions; HTTP error statuses are returned, not raised.

    Example:
        ```python
        async with HttpxClient(timeout=5.0) as http:
            response = await http.post(url, {"hello": "world"})
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: Preconfigured client (e.g. with a MockTransport). One is
                created, and owned by this adapter, when omitted.
            timeout: Request timeout in seconds for an owned client.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def post(
        self, url: str, body: Any, headers: Mapping[str, str] | None = None
    ) -> HttpResponse:
        response = await self._client.post(url, json=body, headers=dict(headers or {}))
        return HttpResponse(
            ok=response.is_success,
            status=response.status_code,
            status_text=response.reason_phrase,
        )

    async def aclose(self) -> None:
        """Close the underlying client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
