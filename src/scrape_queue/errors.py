class ScrapeQueueError(Exception):
    """Base class for errors raised by scrape_queue."""


class TemplateValidationError(ScrapeQueueError, ValueError):
    """Raised by register() when a template is incomplete or its name is taken."""


class TemplateConfigError(ScrapeQueueError):
    """Raised when a YAML template file can't be loaded."""
