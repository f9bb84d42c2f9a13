"""Template registry: name -> template rule, plus per-template timing records.

Timing is kept in a table keyed by template name; Template objects are never
mutated after registration.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

import pydantic

from scrape_queue.errors import TemplateValidationError
from scrape_queue.models import ScraperOptions, Template


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class TemplateTiming:
    """When each lane of a template was (or is reserved to be) last dispatched, in ms."""

    def __init__(self) -> None:
        self.last_used: float | None = None
        self.last_used_priority: float | None = None

    def __repr__(self) -> str:
        return (
            f"TemplateTiming(last_used={self.last_used!r}, "
            f"last_used_priority={self.last_used_priority!r})"
        )


class TemplateRegistry:
    def __init__(self, clock: Callable[[], float] = monotonic_ms):
        self.clock = clock
        self._templates: dict[str, Template] = {}
        self._timing: dict[str, TemplateTiming] = {}

    def register(self, template: Template | Mapping[str, Any]) -> Template:
        """Validate and store a template. Raises TemplateValidationError."""
        if not isinstance(template, Template):
            try:
                template = Template.model_validate(template)
            except pydantic.ValidationError as e:
                raise TemplateValidationError(f"Template is malformed: {e}") from e

        if not template.name:
            raise TemplateValidationError("Template name is missing.")
        if template.callback is None:
            raise TemplateValidationError("Template callback is missing.")
        if template.matches_format is None:
            raise TemplateValidationError("Template matches_format is missing.")
        if template.name in self._templates:
            raise TemplateValidationError(f"Template {template.name!r} already exists.")
        if template.interval < 0:
            raise TemplateValidationError("Template interval must not be negative.")

        self._templates[template.name] = template
        self._timing[template.name] = TemplateTiming()
        return template

    def find_match(self, url: str) -> Template | None:
        """First template, in registration order, whose matcher accepts the URL."""
        for template in self._templates.values():
            if template.matches_format(url):
                return template
        return None

    @staticmethod
    def resolve_interval(template: Template, options: ScraperOptions) -> float:
        if options.interval:
            return options.interval
        if options.max_interval:
            return min(options.max_interval, template.interval)
        return template.interval

    def wait_times(self, options: ScraperOptions) -> dict[str, float]:
        """How long (ms) until each template may be hit again. Never-used templates report 0."""
        now = self.clock()
        waits: dict[str, float] = {}
        for name, template in self._templates.items():
            last_used = self._timing[name].last_used
            if last_used is None:
                waits[name] = 0.0
            else:
                waits[name] = max(0.0, last_used - now + self.resolve_interval(template, options))
        return waits

    def timing(self, name: str) -> TemplateTiming:
        return self._timing[name]

    def templates(self) -> dict[str, Template]:
        return dict(self._templates)

    def clear(self) -> None:
        self._templates.clear()
        self._timing.clear()

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, name: object) -> bool:
        return name in self._templates
