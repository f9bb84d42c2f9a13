import asyncio
import time

import httpx
import pytest
import pytest_asyncio

from scrape_queue.models import FetchResponse, Template
from scrape_queue.scheduler import Scraper


class FakeFetcher:
    """Records when each URL was fetched and replies from a canned table."""

    def __init__(self, responses=None, default_body="<html><title>ok</title><h1>Hello</h1></html>"):
        self.responses = responses or {}
        self.default_body = default_body
        self.calls: list[tuple[str, float]] = []

    async def fetch(self, url: str) -> FetchResponse:
        self.calls.append((url, time.monotonic()))
        reply = self.responses.get(url)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, FetchResponse):
            return reply
        return FetchResponse(status_code=200, body=self.default_body)

    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]


@pytest.fixture
def example_template():
    return Template(
        name="default",
        interval=2000,
        matches_format=lambda url: "example.com" in url.lower(),
        callback=lambda url, body, doc: {},
    )


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def idle_scraper(fetcher):
    """A scraper whose loop is never started."""
    return Scraper(fetcher=fetcher, poll_interval_ms=0)


@pytest_asyncio.fixture
async def scraper(fetcher):
    s = Scraper(fetcher=fetcher, poll_interval_ms=0)
    yield s
    await s.aclose()


async def wait_for(predicate, timeout=2.0):
    """Poll until predicate() is true, failing the test after timeout seconds."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def transport_error():
    return httpx.ConnectError("connection refused")
