# ABOUTME: Dependency container built at startup and handed to every screen.
# ABOUTME: Also creates the httpx.AsyncClient used by the provider client, with retry on transient errors.

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic_ai.retries import AsyncTenacityTransport, RetryConfig, wait_retry_after
from tenacity import retry_if_exception, stop_after_attempt

from weather_dashboard.config import DEFAULT_HTTP_TIMEOUT, AppConfig
from weather_dashboard.reports import ReportService
from weather_dashboard.state import AppState
from weather_dashboard.store import WeatherStore
from weather_dashboard.weather_service import WeatherProvider


class AppContext(BaseModel):
    """Everything a screen needs. Exactly one AppState lives here for the whole process."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    config: AppConfig
    http_client: httpx.AsyncClient
    store: WeatherStore
    state: AppState
    provider: WeatherProvider
    reports: ReportService

    async def aclose(self) -> None:
        await self.http_client.aclose()
        self.store.close()


def _is_transient(exc: BaseException) -> bool:
    """Connection errors, timeouts, 429 and 5xx are worth retrying. Other 4xx are final."""
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def create_http_client(timeout: float = DEFAULT_HTTP_TIMEOUT) -> httpx.AsyncClient:
    """Create an httpx client with tenacity retry on transient HTTP errors.

    Retries connection errors, timeouts, and 429/5xx responses with exponential backoff.
    """
    transport = AsyncTenacityTransport(
        RetryConfig(
            retry=retry_if_exception(_is_transient),
            wait=wait_retry_after(max_wait=30),
            stop=stop_after_attempt(3),
            reraise=True,
        ),
        validate_response=lambda r: r.raise_for_status(),
    )
    return httpx.AsyncClient(transport=transport, timeout=timeout)
