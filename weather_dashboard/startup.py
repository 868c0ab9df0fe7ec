# ABOUTME: Process startup: open the store, restore persisted settings and build the single AppState.
# ABOUTME: Also constructs the screen view-models from the resulting AppContext.

import logging

import httpx

from weather_dashboard.config import AppConfig, get_config
from weather_dashboard.deps import AppContext, create_http_client
from weather_dashboard.errors import StartupError
from weather_dashboard.models import TemperatureUnit
from weather_dashboard.reports import ReportService
from weather_dashboard.state import AppState
from weather_dashboard.store import SETTING_API_KEY, SETTING_TEMPERATURE_UNIT, open_store
from weather_dashboard.viewmodels import DashboardViewModel, HistoryViewModel
from weather_dashboard.weather_service import WeatherProvider

logger = logging.getLogger(__name__)


async def bootstrap(config: AppConfig | None = None, http_client: httpx.AsyncClient | None = None) -> AppContext:
    """Build the application context.

    The shared state is fully restored (default location and unit) before any screen
    exists, so screens created afterwards see it without a notification.
    """
    config = config or get_config()
    try:
        store = open_store(config.database_path)
    except Exception as e:
        raise StartupError(f"Failed to initialize database: {e}") from e

    try:
        unit = TemperatureUnit.parse(await store.get_setting(SETTING_TEMPERATURE_UNIT))
        api_key = await store.get_setting(SETTING_API_KEY) or config.api_key
        default_location = await store.get_default_location()
    except Exception as e:
        store.close()
        raise StartupError(f"Failed to initialize database: {e}") from e

    state = AppState()
    state.set_selected_location(default_location)
    state.set_unit(unit)

    client = http_client or create_http_client(config.http_timeout)
    provider = WeatherProvider(client, base_url=config.api_base_url)
    provider.set_api_key(api_key)
    if not provider.has_api_key:
        logger.warning("No weather API key configured; fetches will fail until one is set")

    logger.info(
        "Application started",
        extra={"location_id": default_location.id if default_location else None, "unit": unit.value},
    )
    return AppContext(
        config=config,
        http_client=client,
        store=store,
        state=state,
        provider=provider,
        reports=ReportService(store),
    )


def create_dashboard(ctx: AppContext) -> DashboardViewModel:
    return DashboardViewModel(ctx.store, ctx.state, ctx.provider)


def create_history(ctx: AppContext) -> HistoryViewModel:
    return HistoryViewModel(ctx.store, ctx.state, ctx.reports, export_dir=ctx.config.export_dir)
