"""Click CLI entry point.

Usage:
    scrape-queue run https://www.example.com/a https://www.example.com/b --exit-when-idle
    scrape-queue run https://www.example.com/a --priority https://www.example.com/hot --interval 1000
    scrape-queue templates --templates my-templates.yaml
"""

from __future__ import annotations

import asyncio
import json

import click

from scrape_queue.config import settings
from scrape_queue.errors import ScrapeQueueError
from scrape_queue.models import ScraperOptions
from scrape_queue.utils.logging import BOLD, DIM, GREEN, RESET, YELLOW, get_logger

log = get_logger()


@click.group()
@click.option("--log-level", default=None, help="debug, info, warning, ... (default from settings)")
def cli(log_level: str | None) -> None:
    """Polite, template-driven URL fetcher."""
    if log_level:
        get_logger(level=log_level)


@cli.command()
@click.argument("urls", nargs=-1)
@click.option("--priority", "priority_urls", multiple=True, help="URL for the priority lane (repeatable)")
@click.option("--templates", "templates_path", default=None, help="Template YAML file")
@click.option("--interval", type=float, default=None, help="Fixed interval (ms) for every template")
@click.option("--max-interval", type=float, default=None, help="Cap (ms) on every template's interval")
@click.option("--exit-when-idle", is_flag=True, help="Exit once the queue is drained and fetches are done")
def run(
    urls: tuple[str, ...],
    priority_urls: tuple[str, ...],
    templates_path: str | None,
    interval: float | None,
    max_interval: float | None,
    exit_when_idle: bool,
) -> None:
    """Fetch URLs through their matching templates, printing one JSON line per result."""
    try:
        asyncio.run(
            _run(
                list(urls),
                list(priority_urls),
                templates_path or settings.templates_path,
                interval,
                max_interval,
                exit_when_idle,
            )
        )
    except ScrapeQueueError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        log.info(f"{DIM}Interrupted{RESET}")


async def _run(
    urls: list[str],
    priority_urls: list[str],
    templates_path: str,
    interval: float | None,
    max_interval: float | None,
    exit_when_idle: bool,
) -> None:
    from scrape_queue.scheduler import Scraper
    from scrape_queue.template_config import load_templates

    options = ScraperOptions.from_settings(settings)
    if interval is not None:
        options.interval = interval
    if max_interval is not None:
        options.max_interval = max_interval

    scraper = Scraper(options=options)
    try:
        for template in load_templates(templates_path):
            scraper.register(template)
        log.info(f"{BOLD}RUN{RESET} — {len(scraper.get_templates())} templates from {templates_path}")

        scraper.on("result", _print_result)
        scraper.on("unmatched", lambda url: log.warning(f"  {YELLOW}–{RESET} no template for {url}"))

        scraper.enqueue(priority_urls, priority=True)
        scraper.enqueue(urls)
        loop_task = scraper.start()

        if exit_when_idle:
            await scraper.join()
            log.info(f"{GREEN}Done{RESET}")
        else:
            await loop_task
    finally:
        await scraper.aclose()


def _print_result(result: dict) -> None:
    payload = {**result, "template": getattr(result["template"], "name", result["template"])}
    click.echo(json.dumps(payload, ensure_ascii=False, default=str))


@cli.command()
@click.option("--templates", "templates_path", default=None, help="Template YAML file")
def templates(templates_path: str | None) -> None:
    """List templates defined in the template file."""
    from scrape_queue.template_config import load_templates

    path = templates_path or settings.templates_path
    try:
        loaded = load_templates(path)
    except ScrapeQueueError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"\n{BOLD}Templates ({path}){RESET}\n")
    click.echo(f"  {'Name':<24} {'Interval':>10}  {'URL'}")
    click.echo(f"  {'─' * 24} {'─' * 10}  {'─' * 30}")
    for template in loaded:
        click.echo(f"  {template.name:<24} {template.interval:>8.0f}ms  {template.url or '—'}")
    click.echo()


if __name__ == "__main__":
    cli()
