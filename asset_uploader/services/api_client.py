"""HTTP adapter for storage backend calls."""
from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional

import httpx


class HTTPAPIClient:
    """
    HTTP client adapter for API calls.

    Implements IAPIClient protocol. Status codes are returned to the caller
    untouched; only transport failures raise (httpx.RequestError).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._client

    async def post(self, endpoint: str, json: Dict) -> httpx.Response:
        return await self._require_client().post(endpoint, json=json)

    async def put(
        self,
        url: str,
        content: AsyncIterator[bytes],
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """PUT a streamed body. Absolute URLs bypass base_url."""
        return await self._require_client().put(url, content=content, headers=headers)


def describe_error(response: httpx.Response) -> Any:
    """Best-effort error detail from a non-success response."""
    try:
        return response.json()
    except ValueError:
        return response.text
