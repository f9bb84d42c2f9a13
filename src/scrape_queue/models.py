from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from scrape_queue.config import Settings


class Template(BaseModel):
    """A named rule set: URL matcher, minimum re-visit interval (ms), result callback.

    Every field is optional here so that an incomplete template can still be
    built and handed to ``TemplateRegistry.register``, which is where the
    required fields are enforced.
    """

    name: str = ""
    matches_format: Callable[[str], bool] | None = None
    callback: Callable[[str, str, Any], Any] | None = None
    interval: float = 0
    url: str | None = None  # home page of the origin, informational only

    model_config = {"frozen": True}


class QueueEntry(BaseModel):
    url: str
    priority: bool = False

    model_config = {"frozen": True}


class ScraperOptions(BaseModel):
    # Both in ms. interval replaces every template's interval, max_interval caps it.
    interval: float | None = None
    max_interval: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ScraperOptions:
        return cls(interval=settings.interval_ms, max_interval=settings.max_interval_ms)


class FetchResponse(BaseModel):
    status_code: int
    body: str
