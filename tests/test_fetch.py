import logging

import httpx
import pytest
import respx
from httpx import Response

from scrape_queue.fetch.client import HttpFetcher
from scrape_queue.fetch.document import parse_document, select_text
from scrape_queue.models import Template
from scrape_queue.scheduler import Scraper

PAGE = """
<html>
  <head><title>Example Domain</title></head>
  <body><h1>  Example   Domain </h1><p class="lead">First</p><p>Second</p></body>
</html>
"""


@pytest.mark.asyncio
@respx.mock
async def test_fetch_returns_status_and_body():
    respx.get("https://www.example.com/").mock(return_value=Response(200, text=PAGE))
    fetcher = HttpFetcher(timeout=5)
    try:
        response = await fetcher.fetch("https://www.example.com/")
    finally:
        await fetcher.aclose()
    assert response.status_code == 200
    assert "Example Domain" in response.body


@pytest.mark.asyncio
@respx.mock
async def test_fetch_sends_user_agent():
    route = respx.get("https://www.example.com/").mock(return_value=Response(200, text="ok"))
    fetcher = HttpFetcher(user_agent="scrape-queue-test")
    try:
        await fetcher.fetch("https://www.example.com/")
    finally:
        await fetcher.aclose()
    assert route.calls.last.request.headers["User-Agent"] == "scrape-queue-test"


@pytest.mark.asyncio
@respx.mock
async def test_fetch_follows_redirects():
    respx.get("https://example.com/").mock(
        return_value=Response(301, headers={"Location": "https://www.example.com/"})
    )
    respx.get("https://www.example.com/").mock(return_value=Response(200, text="moved"))
    fetcher = HttpFetcher()
    try:
        response = await fetcher.fetch("https://example.com/")
    finally:
        await fetcher.aclose()
    assert response.status_code == 200
    assert response.body == "moved"


@pytest.mark.asyncio
@respx.mock
async def test_fetch_reports_non_200_without_raising():
    respx.get("https://www.example.com/gone").mock(return_value=Response(404, text="nope"))
    fetcher = HttpFetcher()
    try:
        response = await fetcher.fetch("https://www.example.com/gone")
    finally:
        await fetcher.aclose()
    assert response.status_code == 404


@pytest.mark.asyncio
@respx.mock
async def test_fetch_raises_on_transport_error():
    respx.get("https://www.example.com/").mock(side_effect=httpx.ConnectError("refused"))
    fetcher = HttpFetcher()
    try:
        with pytest.raises(httpx.HTTPError):
            await fetcher.fetch("https://www.example.com/")
    finally:
        await fetcher.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_scraper_with_http_fetcher_end_to_end():
    respx.get("https://www.example.com/").mock(return_value=Response(200, text=PAGE))
    respx.get("https://www.example.com/500").mock(return_value=Response(500))
    respx.get("https://www.example.com/down").mock(side_effect=httpx.ReadTimeout("slow"))

    scraper = Scraper(fetcher=HttpFetcher(), poll_interval_ms=0)
    try:
        scraper.register(
            Template(
                name="example",
                matches_format=lambda url: "example.com" in url,
                callback=lambda url, body, doc: {"title": select_text(doc, "h1")},
            )
        )
        results = []
        scraper.on("result", results.append)

        scraper.enqueue(
            ["https://www.example.com/500", "https://www.example.com/down", "https://www.example.com/"]
        )
        scraper.start()
        await scraper.join()
    finally:
        await scraper.aclose()

    assert [(r["url"], r["title"]) for r in results] == [("https://www.example.com/", "Example Domain")]


def test_parse_document_is_queryable():
    doc = parse_document(PAGE)
    assert doc.title.get_text() == "Example Domain"
    assert [p.get_text() for p in doc.select("p")] == ["First", "Second"]


def test_select_text_collapses_whitespace():
    doc = parse_document(PAGE)
    assert select_text(doc, "h1") == "Example Domain"
    assert select_text(doc, ".lead") == "First"
    assert select_text(doc, ".missing") is None


@pytest.mark.asyncio
async def test_malformed_url_is_dropped_quietly(caplog):
    scraper = Scraper(fetcher=HttpFetcher(), poll_interval_ms=0)
    try:
        scraper.register(Template(name="all", matches_format=lambda url: True, callback=lambda *a: {}))
        results = []
        scraper.on("result", results.append)

        with caplog.at_level(logging.DEBUG, logger="scrape_queue"):
            scraper.enqueue("http://exa mple.com:abc/")
            scraper.start()
            await scraper.join()
    finally:
        await scraper.aclose()

    assert results == []
    assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []
