# ABOUTME: Screen-level presentation objects: the shared delegation base plus dashboard and history screens.
# ABOUTME: Shared fields pass through to AppState; screen fields raise their own change notifications.

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from weather_dashboard.errors import user_message
from weather_dashboard.models import (
    CurrentConditions,
    ForecastDay,
    Location,
    NewLocation,
    ReadingSummary,
    TemperatureUnit,
    WeatherReading,
    convert_temperature,
    format_temperature,
    same_location,
    summarize,
)
from weather_dashboard.reports import ReportService
from weather_dashboard.state import AppState, Event
from weather_dashboard.store import SETTING_DEFAULT_LOCATION_ID, SETTING_TEMPERATURE_UNIT, WeatherStore
from weather_dashboard.weather_service import ByCoords, WeatherProvider, parse_query

logger = logging.getLogger(__name__)

SELECT_LOCATION_MESSAGE = "Please select a location first"


class ObservableObject:
    """Base for anything a view binds to. `property_changed` carries the changed field name."""

    def __init__(self) -> None:
        self.property_changed = Event(f"{type(self).__name__}.property_changed")

    def on_property_changed(self, name: str) -> None:
        self.property_changed.notify(name)

    def set_field(self, name: str, value: Any) -> bool:
        """Store `value` on `_<name>` and notify if it changed."""
        attr = f"_{name}"
        if getattr(self, attr) == value:
            return False
        setattr(self, attr, value)
        self.on_property_changed(name)
        return True


class ViewModelBase(ObservableObject):
    """Shared behaviour of every screen.

    `selected_location` and `temperature_unit` live in AppState; the view-model only
    delegates. Each set raises the local notification exactly once: the store's echo
    raises it when the value really changed, the setter raises it when the store saw no
    change. Screen reactions to a change run from the store callbacks only, so one user
    action never triggers them twice.
    """

    def __init__(self, store: WeatherStore, state: AppState) -> None:
        super().__init__()
        self.store = store
        self.state = state
        self._is_busy = False
        self._error_message = ""
        self._status_message = ""
        self._reload_pending = False
        self._tasks: set[asyncio.Task] = set()
        self._disposed = False
        self._subscription = state.subscribe(self._location_changed_in_store, self._unit_changed_in_store)

    # Shared state

    @property
    def selected_location(self) -> Location | None:
        return self.state.get_selected_location()

    @selected_location.setter
    def selected_location(self, value: Location | None) -> None:
        if not self.state.set_selected_location(value):
            self.on_property_changed("selected_location")

    @property
    def temperature_unit(self) -> TemperatureUnit:
        return self.state.get_unit()

    @temperature_unit.setter
    def temperature_unit(self, value: TemperatureUnit) -> None:
        if not self.state.set_unit(value):
            self.on_property_changed("temperature_unit")

    def _location_changed_in_store(self, location: Location | None) -> None:
        self.on_property_changed("selected_location")
        self.on_selected_location_changed(location)

    def _unit_changed_in_store(self, unit: TemperatureUnit) -> None:
        self.on_property_changed("temperature_unit")
        self.on_temperature_unit_changed(unit)

    def on_selected_location_changed(self, location: Location | None) -> None:
        """Hook for screen reactions to a new selection, whichever screen made it."""

    def on_temperature_unit_changed(self, unit: TemperatureUnit) -> None:
        """Hook for screen reactions to a unit change."""

    @property
    def is_subscribed(self) -> bool:
        return self._subscription.active

    def dispose(self) -> None:
        """Stop observing the shared state and cancel background reloads. No reload starts afterwards."""
        self._disposed = True
        self._reload_pending = False
        self._subscription.unsubscribe()
        for task in list(self._tasks):
            task.cancel()

    # Screen state

    @property
    def is_busy(self) -> bool:
        return self._is_busy

    @is_busy.setter
    def is_busy(self, value: bool) -> None:
        self.set_field("is_busy", value)

    @property
    def error_message(self) -> str:
        return self._error_message

    @error_message.setter
    def error_message(self, value: str) -> None:
        if self.set_field("error_message", value):
            self.on_property_changed("has_error")

    @property
    def has_error(self) -> bool:
        return bool(self._error_message)

    @property
    def status_message(self) -> str:
        return self._status_message

    @status_message.setter
    def status_message(self, value: str) -> None:
        self.set_field("status_message", value)

    def clear_messages(self) -> None:
        self.error_message = ""
        self.status_message = ""

    # Commands

    async def execute(self, operation: Callable[[], Awaitable[Any]], error_message: str = "An error occurred") -> bool:
        """Run one screen action.

        Only one action runs at a time; a call while busy is silently ignored. Failures are
        turned into `error_message` and never propagate. Returns True if the action ran to
        completion. A reload requested while the action was running starts afterwards.
        """
        if self.is_busy:
            return False
        self.is_busy = True
        self.clear_messages()
        try:
            await operation()
            return True
        except Exception as e:
            logger.exception(error_message)
            self.error_message = user_message(e, error_message)
            return False
        finally:
            self.is_busy = False
            if self._reload_pending:
                self._reload_pending = False
                self.request_reload()

    def can_reload(self) -> bool:
        return self.selected_location is not None

    async def reload(self) -> None:
        """Reload the screen's data for the current selection."""

    def request_reload(self) -> None:
        """Reload in the background now, or as soon as the running action finishes."""
        if self._disposed or not self.can_reload():
            return
        if self.is_busy:
            self._reload_pending = True
            return
        self.spawn(self.reload())

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task | None:
        """Start a background reload from an observer callback.

        The task is tracked so it is not garbage collected, and anything escaping it is
        logged and shown as an error rather than lost.
        """
        if self._disposed:
            coro.close()
            return None
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; skipping background reload")
            return None
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background reload failed", exc_info=exc)
            self.error_message = user_message(exc, "Background update failed")

    async def wait_for_background(self) -> None:
        """Wait until every background reload started so far, and any it started, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def initialize(self) -> None:
        """Load screen data. Called once the screen is shown."""

    def _is_stale(self, target: Location) -> bool:
        """True if the selection moved away from `target` while a fetch was in flight."""
        if same_location(target, self.selected_location):
            return False
        logger.info("Discarding results for a location that is no longer selected", extra={"location_id": target.id})
        self._reload_pending = True
        return True


class DashboardViewModel(ViewModelBase):
    """Current conditions and forecast for the selected location, plus location management."""

    def __init__(self, store: WeatherStore, state: AppState, provider: WeatherProvider) -> None:
        super().__init__(store, state)
        self.provider = provider
        self._current_conditions: CurrentConditions | None = None
        self._forecast: list[ForecastDay] = []
        self._locations: list[Location] = []
        self._search_text = ""
        self._last_updated: datetime | None = None

    @property
    def current_conditions(self) -> CurrentConditions | None:
        return self._current_conditions

    @current_conditions.setter
    def current_conditions(self, value: CurrentConditions | None) -> None:
        if self.set_field("current_conditions", value):
            self._temperatures_changed()

    @property
    def forecast(self) -> list[ForecastDay]:
        return self._forecast

    @forecast.setter
    def forecast(self, value: list[ForecastDay]) -> None:
        self.set_field("forecast", value)

    @property
    def locations(self) -> list[Location]:
        return self._locations

    @locations.setter
    def locations(self, value: list[Location]) -> None:
        self.set_field("locations", value)

    @property
    def search_text(self) -> str:
        return self._search_text

    @search_text.setter
    def search_text(self, value: str) -> None:
        if self.set_field("search_text", value):
            self.on_property_changed("can_search")

    @property
    def last_updated(self) -> datetime | None:
        return self._last_updated

    @last_updated.setter
    def last_updated(self, value: datetime | None) -> None:
        self.set_field("last_updated", value)

    @property
    def can_search(self) -> bool:
        return bool(self._search_text.strip()) and not self.is_busy

    @property
    def formatted_temperature(self) -> str:
        if self._current_conditions is None:
            return "--°"
        return format_temperature(self._current_conditions.temperature, self.temperature_unit)

    @property
    def formatted_feels_like(self) -> str:
        if self._current_conditions is None:
            return "--°"
        return format_temperature(self._current_conditions.feels_like, self.temperature_unit, with_unit=False)

    def format_temperature(self, celsius: float) -> str:
        return format_temperature(celsius, self.temperature_unit)

    def _temperatures_changed(self) -> None:
        self.on_property_changed("formatted_temperature")
        self.on_property_changed("formatted_feels_like")

    def on_selected_location_changed(self, location: Location | None) -> None:
        if location is None:
            self.current_conditions = None
            self.forecast = []
            return
        self.request_reload()

    def on_temperature_unit_changed(self, unit: TemperatureUnit) -> None:
        self._temperatures_changed()

    async def reload(self) -> None:
        await self.load_weather()

    async def initialize(self) -> None:
        if not await self.execute(self._reload_locations, "Failed to initialize dashboard"):
            return
        current = self.selected_location
        if current is None:
            return
        canonical = next((loc for loc in self._locations if loc.id == current.id), None)
        if canonical is None:
            # Deleted since startup.
            self.selected_location = None
            return
        self.state.refresh_selected_location(canonical)
        await self.load_weather()

    async def _reload_locations(self) -> None:
        self.locations = await self.store.get_all_locations()

    async def load_weather(self) -> None:
        """Fetch conditions and forecast for the selected location and record a reading."""
        target = self.selected_location
        if target is None:
            self.error_message = SELECT_LOCATION_MESSAGE
            return

        async def operation() -> None:
            query = ByCoords(latitude=target.latitude, longitude=target.longitude)
            conditions = await self.provider.get_current_conditions(query)
            forecast = await self.provider.get_forecast(query)
            await self.store.save_reading(WeatherReading.from_conditions(target.id, conditions, datetime.now()))
            if self._is_stale(target):
                return
            self.current_conditions = conditions
            self.forecast = forecast
            self.last_updated = datetime.now()

        await self.execute(operation, "Failed to load weather data")

    async def search_location(self) -> None:
        """Look up `search_text`, save the location and select it."""
        if not self.can_search:
            return
        text = self._search_text

        async def operation() -> None:
            conditions = await self.provider.get_current_conditions(parse_query(text))
            saved = await self.store.add_location(
                NewLocation(
                    name=conditions.location_name,
                    latitude=conditions.latitude,
                    longitude=conditions.longitude,
                    country=conditions.country,
                )
            )
            await self._reload_locations()
            self.search_text = ""
            if same_location(saved, self.selected_location):
                self._reload_pending = True
            else:
                # The store echo requests the weather reload; it starts once this action ends.
                self.selected_location = saved

        await self.execute(operation, "Location search failed")

    async def refresh(self) -> None:
        """Reload the saved locations, then the weather for the selection."""
        if not await self.execute(self._reload_locations, "Failed to refresh locations"):
            return
        await self.load_weather()

    async def select_location(self, location_id: int) -> None:
        """Select one of the saved locations by id."""
        location = next((loc for loc in self._locations if loc.id == location_id), None)
        if location is None:
            location = await self.store.get_location_by_id(location_id)
        if location is None:
            self.error_message = f"Unknown location id {location_id}"
            return
        self.selected_location = location

    async def set_default_location(self) -> None:
        location = self.selected_location
        if location is None:
            self.error_message = SELECT_LOCATION_MESSAGE
            return

        async def operation() -> None:
            await self.store.save_setting(SETTING_DEFAULT_LOCATION_ID, str(location.id))
            self.status_message = f"{location.name} set as default location"

        await self.execute(operation, "Failed to set default location")

    async def toggle_temperature_unit(self) -> None:
        if self.is_busy:
            return
        self.temperature_unit = self.temperature_unit.toggled()
        unit = self.temperature_unit

        async def operation() -> None:
            await self.store.save_setting(SETTING_TEMPERATURE_UNIT, unit.value)

        await self.execute(operation, "Failed to save temperature unit")

    async def toggle_favorite(self) -> None:
        location = self.selected_location
        if location is None:
            self.error_message = SELECT_LOCATION_MESSAGE
            return

        async def operation() -> None:
            updated = await self.store.set_favorite(location.id, not location.is_favorite)
            await self._reload_locations()
            if updated is not None and self.state.refresh_selected_location(updated):
                self.on_property_changed("selected_location")

        await self.execute(operation, "Failed to update favorite")

    async def delete_location(self, location_id: int) -> None:
        """Delete a saved location and its readings. Deleting the selected location clears the selection."""

        async def operation() -> None:
            await self.store.delete_location(location_id)
            await self._reload_locations()
            current = self.selected_location
            if current is not None and current.id == location_id:
                self.selected_location = None

        await self.execute(operation, "Failed to delete location")


class HistoryViewModel(ViewModelBase):
    """Readings over a date range for the selected location, with summary, chart series and export."""

    def __init__(
        self,
        store: WeatherStore,
        state: AppState,
        reports: ReportService,
        export_dir: Path | None = None,
    ) -> None:
        super().__init__(store, state)
        self.reports = reports
        self.export_dir = export_dir or Path.cwd()
        now = datetime.now()
        self._locations: list[Location] = []
        self._start_date = now - timedelta(days=30)
        self._end_date = now
        self._readings: list[WeatherReading] = []
        self._summary = ReadingSummary()
        self._is_initialized = False

    @property
    def locations(self) -> list[Location]:
        return self._locations

    @locations.setter
    def locations(self, value: list[Location]) -> None:
        self.set_field("locations", value)

    @property
    def start_date(self) -> datetime:
        return self._start_date

    @start_date.setter
    def start_date(self, value: datetime) -> None:
        if self.set_field("start_date", value) and value <= self._end_date:
            self.request_reload()

    @property
    def end_date(self) -> datetime:
        return self._end_date

    @end_date.setter
    def end_date(self, value: datetime) -> None:
        if self.set_field("end_date", value) and value >= self._start_date:
            self.request_reload()

    @property
    def readings(self) -> list[WeatherReading]:
        return self._readings

    @readings.setter
    def readings(self, value: list[WeatherReading]) -> None:
        if self.set_field("readings", value):
            self._summary = summarize(value)
            self.on_property_changed("summary")

    @property
    def summary(self) -> ReadingSummary:
        return self._summary

    def temperature_series(self) -> list[tuple[datetime, float, float]]:
        """(timestamp, temperature, feels like) points in the current unit."""
        unit = self.temperature_unit
        return [
            (r.timestamp, convert_temperature(r.temperature, unit), convert_temperature(r.feels_like, unit))
            for r in self._readings
        ]

    def humidity_series(self) -> list[tuple[datetime, float]]:
        return [(r.timestamp, r.humidity) for r in self._readings]

    def on_selected_location_changed(self, location: Location | None) -> None:
        if location is None:
            self.readings = []
            return
        self.request_reload()

    def on_temperature_unit_changed(self, unit: TemperatureUnit) -> None:
        self.on_property_changed("temperature_series")

    def can_reload(self) -> bool:
        return self._is_initialized and self.selected_location is not None

    async def reload(self) -> None:
        await self.load_history()

    async def initialize(self) -> None:
        async def operation() -> None:
            self.locations = await self.store.get_all_locations()

        if not await self.execute(operation, "Failed to initialize history view"):
            return
        self._is_initialized = True
        if self.selected_location is not None:
            await self.load_history()

    async def load_history(self) -> None:
        target = self.selected_location
        if target is None:
            self.error_message = SELECT_LOCATION_MESSAGE
            return
        start, end = self._start_date, self._end_date

        async def operation() -> None:
            readings = await self.store.get_readings_in_range(target.id, start, end)
            if self._is_stale(target):
                return
            self.readings = readings
            if not readings:
                self.error_message = f"No weather data found for {target.name} in the selected date range."
                return
            self.status_message = f"Loaded {len(readings)} weather records"
            logger.info("History loaded", extra={"location_id": target.id, "reading_count": len(readings)})

        await self.execute(operation, "Failed to load weather history")

    async def export_document(self, directory: Path | None = None) -> Path | None:
        return await self._export(self.reports.generate_document, "html", directory, "Failed to export report")

    async def export_spreadsheet(self, directory: Path | None = None) -> Path | None:
        return await self._export(self.reports.generate_spreadsheet, "csv", directory, "Failed to export spreadsheet")

    async def _export(
        self,
        generate: Callable[[int, datetime, datetime], Awaitable[bytes]],
        extension: str,
        directory: Path | None,
        error_message: str,
    ) -> Path | None:
        location = self.selected_location
        if location is None or not self._readings:
            self.error_message = "No data available to export"
            return None
        target_dir = directory or self.export_dir
        path = target_dir / f"WeatherReport_{location.name.replace(' ', '_')}_{datetime.now():%Y%m%d}.{extension}"
        start, end = self._start_date, self._end_date

        async def operation() -> None:
            content = await generate(location.id, start, end)
            await asyncio.to_thread(_write_report, path, content)
            self.status_message = f"Report saved to: {path}"
            logger.info("Report exported", extra={"location_id": location.id, "path": path})

        if await self.execute(operation, error_message):
            return path
        return None


def _write_report(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
