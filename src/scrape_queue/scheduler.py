"""Queue-draining scheduler with per-template, two-lane rate limiting.

The loop pops one URL at a time, finds the template that owns it and works
out how long to wait before that template's origin may be hit again. Each
template keeps two cadences: a regular lane (``last_used``) and a priority
lane (``last_used_priority``). Given url1, url2 (regular) and url3, url4
(priority) arriving together, url1 and url3 go out at once, and url2 and
url4 go out one interval later.

Priority URLs are always fetched immediately; the wait computed for them only
moves the reservation forward so later entries see it. Every dispatch
advances the regular lane, while only regular dispatches advance the priority
lane. Priority-only traffic therefore never throttles itself.

Usage:
    scraper = Scraper()
    scraper.register(Template(name="example", matches_format=..., callback=..., interval=2000))
    scraper.on("result", handle_result)
    scraper.enqueue(["https://www.example.com/a", "https://www.example.com/b"])
    scraper.start()
"""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Literal

import httpx
from pydantic import BaseModel

from scrape_queue.config import settings
from scrape_queue.fetch.client import Fetcher, HttpFetcher
from scrape_queue.fetch.document import parse_document
from scrape_queue.models import QueueEntry, ScraperOptions, Template
from scrape_queue.registry import TemplateRegistry, monotonic_ms
from scrape_queue.utils.logging import DIM, GREEN, RESET, YELLOW, get_logger

log = get_logger()

Event = Literal["result", "unmatched"]
EVENTS: tuple[Event, ...] = ("result", "unmatched")


class Scraper:
    """Owns the URL queue and drives dispatch through the template registry."""

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        parser: Callable[[str], Any] = parse_document,
        options: ScraperOptions | None = None,
        clock: Callable[[], float] = monotonic_ms,
        poll_interval_ms: float | None = None,
    ):
        self.registry = TemplateRegistry(clock)
        self.fetcher: Fetcher = fetcher if fetcher is not None else HttpFetcher()
        self.parser = parser
        self.poll_interval_ms = (
            settings.poll_interval_ms if poll_interval_ms is None else poll_interval_ms
        )
        self._options = options or ScraperOptions.from_settings(settings)
        self._queue: deque[QueueEntry] = deque()
        self._wakeup = asyncio.Event()
        self._handlers: dict[str, list[Callable[[Any], Any]]] = {e: [] for e in EVENTS}
        self._loop_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Templates, options, queue
    # ------------------------------------------------------------------

    def register(self, template: Template | Mapping[str, Any]) -> Template:
        return self.registry.register(template)

    def get_templates(self) -> dict[str, Template]:
        return self.registry.templates()

    def set_options(self, options: ScraperOptions | Mapping[str, Any]) -> None:
        if not isinstance(options, ScraperOptions):
            options = ScraperOptions.model_validate(options)
        self._options = options

    def get_options(self) -> ScraperOptions:
        return self._options

    def enqueue(self, urls: str | Iterable[str], priority: bool = False) -> None:
        """Append one URL or a list of URLs to the tail of the queue."""
        if isinstance(urls, str):
            urls = [urls]
        for url in urls:
            self._queue.append(QueueEntry(url=url, priority=priority))
        self._wakeup.set()

    def get_queue(self) -> tuple[QueueEntry, ...]:
        return tuple(self._queue)

    def get_wait_times(self) -> dict[str, float]:
        return self.registry.wait_times(self._options)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: Event, handler: Callable[[Any], Any]) -> None:
        """Subscribe to ``result`` (merged dict) or ``unmatched`` (the URL).

        Coroutine handlers are scheduled as tasks and awaited by ``join()``.
        """
        self._event_handlers(event).append(handler)

    def off(self, event: Event, handler: Callable[[Any], Any]) -> None:
        handlers = self._event_handlers(event)
        if handler in handlers:
            handlers.remove(handler)

    def _event_handlers(self, event: str) -> list[Callable[[Any], Any]]:
        if event not in self._handlers:
            raise ValueError(f"Unknown event {event!r}, expected one of {EVENTS}")
        return self._handlers[event]

    def _emit(self, event: Event, payload: Any) -> None:
        for handler in list(self._handlers[event]):
            try:
                outcome = handler(payload)
                if inspect.isawaitable(outcome):
                    self._spawn(outcome)
            except Exception:
                log.exception(f"{event} handler {handler!r} failed")

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def start(self, options: ScraperOptions | Mapping[str, Any] | None = None) -> asyncio.Task:
        """Start draining the queue. Must be called from a running event loop.

        Calling it again while the loop is alive only replaces the options.
        """
        if options is not None:
            self.set_options(options)
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._run(), name="scrape-queue-loop")
            log.debug(f"{DIM}Scraper loop started ({len(self.registry)} templates){RESET}")
        return self._loop_task

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _run(self) -> None:
        while True:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            entry = self._queue.popleft()
            try:
                self._process(entry)
            except Exception:
                log.exception(f"Dropping {entry.url}: scheduling failed")

            await asyncio.sleep(self.poll_interval_ms / 1000.0)

    def _process(self, entry: QueueEntry) -> None:
        template = self.registry.find_match(entry.url)
        if template is None:
            log.debug(f"{YELLOW}–{RESET} unmatched {entry.url}")
            self._emit("unmatched", entry.url)
            return

        interval = self.registry.resolve_interval(template, self._options)
        timing = self.registry.timing(template.name)
        now = self.registry.clock()

        lane_last = timing.last_used_priority if entry.priority else timing.last_used
        wait = 0.0 if lane_last is None else max(0.0, lane_last + interval - now)

        # Reserve the slot now so entries popped before this fetch fires see it.
        timing.last_used = now + wait
        if not entry.priority:
            timing.last_used_priority = now + wait

        lane = "priority" if entry.priority else "regular"
        log.debug(f"{DIM}[{template.name}] {lane} slot in {wait:.0f}ms → {entry.url}{RESET}")

        if entry.priority:
            wait = 0.0
        self._spawn(self._dispatch(entry.url, template, wait))

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._on_dispatch_done)

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Dispatch failed", exc_info=task.exception())

    async def _dispatch(self, url: str, template: Template, wait_ms: float) -> None:
        if wait_ms > 0:
            await asyncio.sleep(wait_ms / 1000.0)

        try:
            response = await self.fetcher.fetch(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.debug(f"{DIM}dropped {url} ({type(e).__name__}){RESET}")
            return

        if response.status_code != 200:
            log.debug(f"{DIM}dropped {url} (HTTP {response.status_code}){RESET}")
            return

        try:
            document = self.parser(response.body)
            result = _merge_result(url, template, template.callback(url, response.body, document))
        except Exception:
            log.exception(f"[{template.name}] callback failed for {url}")
            return

        log.debug(f"  {GREEN}✓{RESET} [{template.name}] {url}")
        self._emit("result", result)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def join(self) -> None:
        """Wait until the queue is drained and every dispatched fetch has finished."""
        while self._queue or self._in_flight:
            if self._queue and not self.running:
                raise RuntimeError("join() called with a non-empty queue but the loop isn't running")
            if self._in_flight:
                await asyncio.gather(*list(self._in_flight), return_exceptions=True)
            else:
                await asyncio.sleep(0.01)

    def reset(self) -> None:
        """Return to an empty scraper: no templates, queue, handlers or pending fetches."""
        for task in self._tasks():
            task.cancel()
        self._loop_task = None
        self._in_flight.clear()
        self._queue.clear()
        self._wakeup = asyncio.Event()
        self.registry.clear()
        self._handlers = {e: [] for e in EVENTS}
        self._options = ScraperOptions.from_settings(settings)

    async def aclose(self) -> None:
        tasks = self._tasks()
        self.reset()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        close = getattr(self.fetcher, "aclose", None)
        if close is not None:
            await close()

    def _tasks(self) -> list[asyncio.Task]:
        tasks = list(self._in_flight)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        return tasks


def _merge_result(url: str, template: Template, result: Any) -> dict[str, Any]:
    """Shallow-merge the callback's return over {url, template}; callback keys win."""
    if result is None:
        data: dict[str, Any] = {}
    elif isinstance(result, BaseModel):
        data = result.model_dump()
    else:
        data = dict(result)
    return {"url": url, "template": template, **data}
