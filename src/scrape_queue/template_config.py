"""Templates loaded from a YAML file.

Each top-level key is a template name:

    example:
      url: https://www.example.com/
      pattern: "example\\.com"   # regex searched in the URL, case-insensitive
      interval: 2000              # ms between hits
      fields:                     # CSS selector per output field
        title: h1
        summary: .lead

The generated callback returns the text of the first element matching each
selector (None when nothing matches). Without a ``title`` field the page's
<title> is used.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pydantic
import yaml

from scrape_queue.errors import TemplateConfigError
from scrape_queue.fetch.document import select_text
from scrape_queue.models import Template


def load_template_config(path: str | Path) -> dict[str, dict]:
    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except OSError as e:
        raise TemplateConfigError(f"Can't read template file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise TemplateConfigError(f"Invalid YAML in {path}: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise TemplateConfigError(f"{path} must map template names to settings")
    return config


def build_template(name: str, config: dict[str, Any]) -> Template:
    """Turn one YAML entry into a Template."""
    if not isinstance(config, dict):
        raise TemplateConfigError(f"Template {name!r}: expected a mapping")
    if not config.get("pattern"):
        raise TemplateConfigError(f"Template {name!r}: 'pattern' is required")

    try:
        regex = re.compile(config["pattern"], re.IGNORECASE)
    except re.error as e:
        raise TemplateConfigError(f"Template {name!r}: bad pattern: {e}") from e

    fields = config.get("fields") or {}
    if not isinstance(fields, dict):
        raise TemplateConfigError(f"Template {name!r}: 'fields' must be a mapping")

    def matches_format(url: str) -> bool:
        return regex.search(url) is not None

    def callback(url: str, body: str, doc: Any) -> dict[str, Any]:
        result = {field: select_text(doc, selector) for field, selector in fields.items()}
        if "title" not in result:
            result["title"] = select_text(doc, "title")
        return result

    try:
        return Template(
            name=name,
            url=config.get("url"),
            interval=config.get("interval", 0),
            matches_format=matches_format,
            callback=callback,
        )
    except pydantic.ValidationError as e:
        raise TemplateConfigError(f"Template {name!r}: {e}") from e


def load_templates(path: str | Path) -> list[Template]:
    return [build_template(name, entry) for name, entry in load_template_config(path).items()]
