# ABOUTME: Process configuration read from environment variables and an optional .env file.
# ABOUTME: Covers database location, provider endpoint, HTTP timeout, export directory and log level.

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

DEFAULT_BASE_URL = "https://api.openweathermap.org/data/2.5/"
DEFAULT_HTTP_TIMEOUT = 30.0

_DB_PATH_ENV = "WEATHER_DASHBOARD_DB_PATH"
_BASE_URL_ENV = "OPENWEATHER_BASE_URL"
_API_KEY_ENV = "OPENWEATHER_API_KEY"
_TIMEOUT_ENV = "WEATHER_DASHBOARD_HTTP_TIMEOUT"
_EXPORT_DIR_ENV = "WEATHER_DASHBOARD_EXPORT_DIR"
_LOG_LEVEL_ENV = "LOG_LEVEL"


class AppConfig(BaseModel):
    """Immutable process configuration."""

    model_config = ConfigDict(frozen=True)

    database_path: Path
    api_base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    export_dir: Path
    log_level: str = "INFO"


def _read_str(name: str, default: str) -> str:
    value = os.environ.get(name, "").strip()
    return value or default


def _read_timeout(default: float) -> float:
    value = os.environ.get(_TIMEOUT_ENV, "").strip()
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _default_export_dir() -> Path:
    documents = Path.home() / "Documents"
    return documents if documents.is_dir() else Path.home()


@lru_cache
def get_config() -> AppConfig:
    """Load configuration once per process. Tests call get_config.cache_clear()."""
    load_dotenv()
    db_path = os.environ.get(_DB_PATH_ENV, "").strip()
    export_dir = os.environ.get(_EXPORT_DIR_ENV, "").strip()
    base_url = _read_str(_BASE_URL_ENV, DEFAULT_BASE_URL)
    return AppConfig(
        database_path=Path(db_path).expanduser() if db_path else Path.home() / ".weather_dashboard" / "weather.db",
        api_base_url=base_url if base_url.endswith("/") else base_url + "/",
        api_key=os.environ.get(_API_KEY_ENV, "").strip() or None,
        http_timeout=_read_timeout(DEFAULT_HTTP_TIMEOUT),
        export_dir=Path(export_dir).expanduser() if export_dir else _default_export_dir(),
        log_level=_read_str(_LOG_LEVEL_ENV, "INFO").upper(),
    )
