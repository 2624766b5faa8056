from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import httpx


class OriginFetchError(Exception):
    def __init__(self, url: str, status_code: int | None, message: str):
        self.url = url
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class OriginClient(Protocol):
    """Fetches stored objects as a stream of byte chunks."""

    def open(
        self, url: str, timeout: float
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        ...


def build_http_client(timeout_s: float, user_agent: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=True,
        headers={"User-Agent": user_agent, "Accept": "image/*,*/*;q=0.8"},
    )


class HttpxOriginClient:
    def __init__(self, client: httpx.AsyncClient, chunk_size: int = 64 * 1024):
        self._client = client
        self._chunk_size = chunk_size

    @asynccontextmanager
    async def open(self, url: str, timeout: float) -> AsyncIterator[AsyncIterator[bytes]]:
        request = self._client.build_request("GET", url)
        # The deadline covers connecting and receiving headers; body reads are
        # bounded individually by the client's own read timeout.
        response = await asyncio.wait_for(self._client.send(request, stream=True), timeout)
        try:
            if not response.is_success:
                raise OriginFetchError(
                    url, response.status_code, f"Origin responded with HTTP {response.status_code}"
                )
            if response.status_code == 204:
                raise OriginFetchError(url, response.status_code, "Origin response has no body")
            yield response.aiter_bytes(self._chunk_size)
        finally:
            await response.aclose()
