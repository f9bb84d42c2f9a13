"""HTTP fetcher used by the scheduler to issue GET requests.

One httpx.AsyncClient is shared by every in-flight fetch so connections to
the same origin are pooled. Transport failures surface as httpx.HTTPError;
non-200 statuses are returned as-is and it's up to the caller to drop them.
"""

from __future__ import annotations

from typing import Protocol

import httpx

from scrape_queue.config import settings
from scrape_queue.models import FetchResponse


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchResponse: ...


class HttpFetcher:
    def __init__(
        self,
        timeout: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.user_agent = user_agent or settings.user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            )
        return self._client

    async def fetch(self, url: str) -> FetchResponse:
        response = await self._get_client().get(url)
        return FetchResponse(status_code=response.status_code, body=response.text)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
