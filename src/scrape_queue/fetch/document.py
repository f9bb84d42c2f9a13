from __future__ import annotations

from bs4 import BeautifulSoup


def parse_document(body: str) -> BeautifulSoup:
    """Parse a response body into a queryable document (``select``/``select_one``/``find``)."""
    return BeautifulSoup(body, "html.parser")


def select_text(doc: BeautifulSoup, selector: str) -> str | None:
    """Whitespace-collapsed text of the first element matching a CSS selector, or None."""
    el = doc.select_one(selector)
    if el is None:
        return None
    text = " ".join(el.get_text(" ").split())
    return text or None
