from datetime import UTC, date, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utc_iso(moment: datetime | None = None) -> str:
    """Return a UTC ISO-8601 timestamp with millisecond precision and a ``Z`` suffix.

    This is the wire format of ``created_at``/``updated_at`` on both replicas.
    """
    moment = moment or datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def local_timestamp(moment: datetime) -> str:
    """Format a local datetime as ``YYYY-MM-DDTHH:MM:SS`` (no zone)."""
    return moment.strftime("%Y-%m-%dT%H:%M:%S")


def date_string(day: date) -> str:
    return day.strftime("%Y-%m-%d")


class Settings(BaseSettings):
    app_name: str = "Memory App"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'memory_app.db'}"
    remote_url: str = ""
    remote_anon_key: str = ""
    remote_timeout_seconds: float = 10.0
    remote_max_retries: int = 3
    sync_debounce_seconds: float = 2.0
    default_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    default_category: str = "Uncategorized"
    debug: bool = False

    model_config = {"env_prefix": "MEMORY_APP_", "env_file": ".env"}


settings = Settings()
