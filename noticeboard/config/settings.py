"""Application settings with environment variable support."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


_DATA_DIR = Path(__file__).parent.parent.parent.resolve() / "data"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NB_",  # NB_DATABASE_URL, NB_FETCH_MAX_REDIRECTS, etc.
    )

    # Database
    database_url: str = f"sqlite:///{_DATA_DIR / 'noticeboard.db'}"

    # Fetching
    fetch_connect_timeout_seconds: float = 10.0
    fetch_read_timeout_seconds: float = 15.0
    fetch_max_redirects: int = 3
    fetch_max_response_bytes: int = 5 * 1024 * 1024
    fetch_chunk_bytes: int = 64 * 1024
    fetch_user_agent: str = "NoticeBoard RSS Reader"

    # Scheduling
    refresh_interval_minutes: int = 60
    scheduler_tick_minutes: int = 5
    max_concurrent_fetches: int = 5

    # Health
    critical_error_threshold: int = 3
    last_error_max_length: int = 1000

    # Retries (execution-level only, never per HTTP request)
    retry_attempts: int = 3
    retry_backoff_seconds: float = 10.0

    # Operator triggers
    preview_limit: int = 10
    recent_items_limit: int = 50
    # When True, manual refresh/preview refuses feeds in Critical health
    # just like the scheduled path does.
    manual_refresh_respects_health_gate: bool = False


settings = Settings()
