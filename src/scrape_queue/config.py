from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "info"
    # Global cadence overrides (ms). interval wins over max_interval when both are set.
    interval_ms: float | None = None
    max_interval_ms: float | None = None
    # Delay between queue entries in the dispatch loop. 0 just yields to the event loop.
    poll_interval_ms: float = 0
    request_timeout: float = 30.0
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    )
    templates_path: str = "templates.yaml"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "SCRAPE_QUEUE_",
        "extra": "ignore",
    }


settings = Settings()
