# ABOUTME: Behaviour tests for the dashboard and history view-models sharing one AppState.
# ABOUTME: Validates cross-screen sync, local notifications, the stale-fetch guard, busy handling and exports.

import asyncio
from datetime import date, datetime, timedelta

import pytest

from weather_dashboard.errors import API_KEY_MESSAGE, NOT_FOUND_MESSAGE, ApiKeyError, LocationNotFoundError, StoreError
from weather_dashboard.models import CurrentConditions, ForecastDay, NewLocation, TemperatureUnit, WeatherReading
from weather_dashboard.reports import ReportService
from weather_dashboard.store import SETTING_DEFAULT_LOCATION_ID, SETTING_TEMPERATURE_UNIT
from weather_dashboard.viewmodels import SELECT_LOCATION_MESSAGE, DashboardViewModel, HistoryViewModel
from weather_dashboard.weather_service import ByName

PLACES = {
    "Billings": (45.78, -108.5),
    "Missoula": (46.87, -113.99),
    "Great Falls": (47.5, -111.3),
}


class FakeProvider:
    """Stands in for WeatherProvider. Fetches for a place can be held open with an asyncio.Event."""

    def __init__(self):
        self.calls = []
        self.gates: dict[str, asyncio.Event] = {}
        self.error: Exception | None = None

    def _name_for(self, query) -> str:
        if isinstance(query, ByName):
            if query.city not in PLACES:
                raise LocationNotFoundError(query.city)
            return query.city
        for name, (lat, lon) in PLACES.items():
            if (lat, lon) == (query.latitude, query.longitude):
                return name
        raise LocationNotFoundError(str(query))

    async def get_current_conditions(self, query) -> CurrentConditions:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        name = self._name_for(query)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        lat, lon = PLACES[name]
        return CurrentConditions(
            location_name=name,
            country="US",
            latitude=lat,
            longitude=lon,
            temperature=20.0,
            feels_like=18.0,
            humidity=40,
            pressure=1015,
            wind_speed=3.0,
            description=f"sunny in {name}",
            timestamp=datetime.now(),
        )

    async def get_forecast(self, query) -> list[ForecastDay]:
        return [ForecastDay(date=date(2025, 1, 1), temp_max=5, temp_min=-2)]


class GatedStore:
    """Wraps a real store. Reading queries for a location can be held open, and listing can fail."""

    def __init__(self, store):
        self._store = store
        self.gates: dict[int, asyncio.Event] = {}
        self.range_calls: list[int] = []
        self.fail_listing = False

    def __getattr__(self, name):
        return getattr(self._store, name)

    async def get_all_locations(self):
        if self.fail_listing:
            raise StoreError("database is locked")
        return await self._store.get_all_locations()

    async def get_readings_in_range(self, location_id, start, end):
        self.range_calls.append(location_id)
        gate = self.gates.get(location_id)
        if gate is not None:
            await gate.wait()
        return await self._store.get_readings_in_range(location_id, start, end)


async def _wait_until(predicate) -> None:
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


async def _save(store, name: str, is_favorite: bool = False):
    lat, lon = PLACES[name]
    return await store.add_location(
        NewLocation(name=name, latitude=lat, longitude=lon, country="US", is_favorite=is_favorite)
    )


def _reading(location_id: int, timestamp: datetime, temperature: float) -> WeatherReading:
    return WeatherReading(
        location_id=location_id,
        timestamp=timestamp,
        temperature=temperature,
        feels_like=temperature - 1,
        humidity=55,
        pressure=1010,
        wind_speed=2.0,
        description="cloudy",
        icon_code="03d",
    )


def _recorder(vm) -> list[str]:
    names: list[str] = []
    vm.property_changed.register(names.append)
    return names


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def dashboard(store, state, provider):
    vm = DashboardViewModel(store, state, provider)
    yield vm
    vm.dispose()


@pytest.fixture
def history(store, state, tmp_path):
    vm = HistoryViewModel(store, state, ReportService(store), export_dir=tmp_path / "exports")
    yield vm
    vm.dispose()


class TestSharedSelection:
    @pytest.mark.asyncio
    async def test_selection_reaches_every_screen(self, store, dashboard, history):
        """A selection made on one screen is visible and announced on the other.

        Implementation: Selects a location through the dashboard and inspects the history screen.
        Passing implies: Both screens read one shared source of truth.
        """
        billings = await _save(store, "Billings")
        history_names = _recorder(history)

        dashboard.selected_location = billings
        await dashboard.wait_for_background()

        assert history.selected_location.id == billings.id
        assert history_names.count("selected_location") == 1

    @pytest.mark.asyncio
    async def test_changed_selection_notifies_locally_once(self, store, dashboard, provider):
        """A real change raises exactly one local notification and one reload.

        Implementation: Records property names while selecting a new location.
        Passing implies: The store echo is the only source of the local notification.
        """
        billings = await _save(store, "Billings")
        names = _recorder(dashboard)

        dashboard.selected_location = billings
        await dashboard.wait_for_background()

        assert names.count("selected_location") == 1
        assert len(provider.calls) == 1
        assert dashboard.current_conditions.location_name == "Billings"

    @pytest.mark.asyncio
    async def test_unchanged_selection_still_notifies_once(self, store, state, dashboard, provider):
        """Re-selecting the current location raises one local notification and no reload.

        Implementation: Selects a location, then selects it again.
        Passing implies: Every set is announced once; only real changes trigger reactions.
        """
        billings = await _save(store, "Billings")
        dashboard.selected_location = billings
        await dashboard.wait_for_background()
        names = _recorder(dashboard)

        dashboard.selected_location = billings
        await dashboard.wait_for_background()

        assert names.count("selected_location") == 1
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_unit_is_shared(self, store, dashboard, history):
        """Toggling the unit updates both screens, refreshes temperatures and persists the choice.

        Implementation: Toggles the unit on the dashboard.
        Passing implies: The unit is global and survives restarts.
        """
        dashboard_names = _recorder(dashboard)
        history_names = _recorder(history)

        await dashboard.toggle_temperature_unit()

        assert history.temperature_unit is TemperatureUnit.FAHRENHEIT
        assert dashboard_names.count("temperature_unit") == 1
        assert dashboard_names.count("formatted_temperature") == 1
        assert history_names.count("temperature_unit") == 1
        assert await store.get_setting(SETTING_TEMPERATURE_UNIT) == "Fahrenheit"

    @pytest.mark.asyncio
    async def test_unit_and_selection_are_independent(self, store, dashboard, provider):
        """A unit toggle raises no selection notification, and a selection raises no unit notification.

        Implementation: Records dashboard property names across a unit toggle, then a selection.
        Passing implies: Changing one shared field never triggers the other's reactions.
        """
        billings = await _save(store, "Billings")
        names = _recorder(dashboard)

        await dashboard.toggle_temperature_unit()
        assert "selected_location" not in names
        assert provider.calls == []

        names.clear()
        dashboard.selected_location = billings
        await dashboard.wait_for_background()
        assert "temperature_unit" not in names
        assert dashboard.temperature_unit is TemperatureUnit.FAHRENHEIT

    @pytest.mark.asyncio
    async def test_dispose_drops_queued_reload(self, store, dashboard, provider):
        """Disposing a screen with a reload queued behind a running fetch starts nothing new.

        Implementation: Holds the Billings fetch open, selects Missoula so its reload is queued,
        then disposes and waits for background work.
        Passing implies: A closed screen neither fetches nor records readings afterwards.
        """
        billings = await _save(store, "Billings")
        missoula = await _save(store, "Missoula")
        provider.gates["Billings"] = asyncio.Event()

        dashboard.selected_location = billings
        await _wait_until(lambda: len(provider.calls) == 1)
        dashboard.selected_location = missoula

        dashboard.dispose()
        await dashboard.wait_for_background()

        assert len(provider.calls) == 1
        assert not dashboard.is_busy
        end = datetime.now() + timedelta(minutes=1)
        assert await store.get_readings_in_range(missoula.id, end - timedelta(days=1), end) == []

        dashboard.request_reload()
        await dashboard.wait_for_background()
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_disposed_screen_stops_listening(self, store, state, dashboard, history):
        """After dispose, a screen receives no further notifications.

        Implementation: Disposes the history screen and changes the selection.
        Passing implies: Closed screens cannot leak reactions.
        """
        billings = await _save(store, "Billings")
        history.dispose()
        names = _recorder(history)

        dashboard.selected_location = billings
        await dashboard.wait_for_background()

        assert not history.is_subscribed
        assert names == []


class TestStaleFetchGuard:
    @pytest.mark.asyncio
    async def test_late_result_for_old_selection_is_discarded(self, store, dashboard, provider):
        """A fetch that completes after the selection moved on does not overwrite the screen.

        Implementation: Holds the Billings fetch open, selects Missoula, then releases Billings.
        Passing implies: The screen always ends up showing the currently selected location.
        """
        billings = await _save(store, "Billings")
        missoula = await _save(store, "Missoula")
        gate = asyncio.Event()
        provider.gates["Billings"] = gate

        dashboard.selected_location = billings
        await _wait_until(lambda: len(provider.calls) == 1)
        assert dashboard.is_busy

        dashboard.selected_location = missoula
        gate.set()
        await dashboard.wait_for_background()

        assert dashboard.current_conditions.location_name == "Missoula"
        assert dashboard.selected_location.id == missoula.id
        assert not dashboard.is_busy
        # The late Billings reading is still recorded in history.
        end = datetime.now() + timedelta(minutes=1)
        start = end - timedelta(days=1)
        assert len(await store.get_readings_in_range(billings.id, start, end)) == 1
        assert len(await store.get_readings_in_range(missoula.id, start, end)) == 1


class TestExecute:
    @pytest.mark.asyncio
    async def test_busy_screen_ignores_second_action(self, store, dashboard, provider):
        """While one action runs, another is a no-op.

        Implementation: Holds a weather load open and tries to execute another operation.
        Passing implies: Double clicks never run overlapping actions.
        """
        billings = await _save(store, "Billings")
        gate = asyncio.Event()
        provider.gates["Billings"] = gate
        dashboard.selected_location = billings
        await _wait_until(lambda: dashboard.is_busy)

        ran = []

        async def other():
            ran.append(True)

        assert await dashboard.execute(other) is False
        gate.set()
        await dashboard.wait_for_background()
        assert ran == []
        assert await dashboard.execute(other) is True
        assert ran == [True]

    @pytest.mark.asyncio
    async def test_errors_become_messages(self, dashboard):
        """Exceptions from an action end up in error_message, never raised.

        Implementation: Executes an operation that raises.
        Passing implies: Screens survive failures and tell the user what happened.
        """
        async def broken():
            raise RuntimeError("disk on fire")

        assert await dashboard.execute(broken, "Failed to do it") is False
        assert dashboard.error_message == "Failed to do it: disk on fire"
        assert dashboard.has_error
        assert not dashboard.is_busy

    @pytest.mark.asyncio
    async def test_background_failure_is_surfaced(self, dashboard):
        """A background task failing outside execute still reaches error_message.

        Implementation: Spawns a coroutine that raises.
        Passing implies: Reload failures are never silently lost.
        """
        async def boom():
            raise RuntimeError("lost")

        dashboard.spawn(boom())
        await dashboard.wait_for_background()
        assert dashboard.error_message == "Background update failed: lost"


class TestDashboard:
    @pytest.mark.asyncio
    async def test_load_without_selection(self, dashboard, provider):
        """Loading weather with nothing selected asks the user to pick a location.

        Implementation: Calls load_weather on an empty state.
        Passing implies: No request is made without a target.
        """
        await dashboard.load_weather()
        assert dashboard.error_message == SELECT_LOCATION_MESSAGE
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_load_records_reading(self, store, dashboard):
        """Loading weather updates the screen and appends a reading.

        Implementation: Selects a location and inspects fields and stored readings.
        Passing implies: Every fetch builds up history.
        """
        billings = await _save(store, "Billings")
        dashboard.selected_location = billings
        await dashboard.wait_for_background()

        assert dashboard.formatted_temperature == "20.0°C"
        assert dashboard.formatted_feels_like == "18.0°"
        assert len(dashboard.forecast) == 1
        assert dashboard.last_updated is not None
        readings = await store.get_readings_in_range(
            billings.id, datetime.now() - timedelta(days=1), datetime.now() + timedelta(minutes=1)
        )
        assert [r.temperature for r in readings] == [20.0]

    @pytest.mark.asyncio
    async def test_refresh_reloads_locations_and_weather(self, store, dashboard, provider):
        """refresh picks up locations saved elsewhere and fetches the weather again.

        Implementation: Selects a location, saves another straight into the store, then refreshes.
        Passing implies: The refresh command brings both the list and the conditions up to date.
        """
        billings = await _save(store, "Billings")
        dashboard.selected_location = billings
        await dashboard.wait_for_background()
        missoula = await _save(store, "Missoula")
        assert [loc.id for loc in dashboard.locations] == []

        await dashboard.refresh()

        assert {loc.id for loc in dashboard.locations} == {billings.id, missoula.id}
        assert len(provider.calls) == 2
        assert dashboard.selected_location.id == billings.id

    @pytest.mark.asyncio
    async def test_search_saves_and_selects(self, store, state, dashboard, provider):
        """Searching a city saves it, selects it and loads its weather.

        Implementation: Searches for Billings by name.
        Passing implies: A search is the way new locations enter the app.
        """
        dashboard.search_text = "Billings"
        await dashboard.search_location()
        await dashboard.wait_for_background()

        assert state.get_selected_location().name == "Billings"
        assert [loc.name for loc in dashboard.locations] == ["Billings"]
        assert dashboard.search_text == ""
        assert dashboard.current_conditions.location_name == "Billings"
        assert dashboard.error_message == ""

    @pytest.mark.asyncio
    async def test_search_for_selected_location_reloads(self, store, dashboard, provider):
        """Searching the already selected location still refreshes its weather.

        Implementation: Selects Billings, then searches for it again.
        Passing implies: A search always ends with fresh data on screen.
        """
        billings = await _save(store, "Billings")
        dashboard.selected_location = billings
        await dashboard.wait_for_background()

        dashboard.search_text = "billings"
        await dashboard.search_location()
        await dashboard.wait_for_background()
        assert len(provider.calls) == 3
        assert len(await store.get_all_locations()) == 1

    @pytest.mark.asyncio
    async def test_search_unknown_city(self, dashboard):
        """An unknown city yields the not-found message.

        Implementation: Searches for a name the provider does not know.
        Passing implies: Typos get a helpful message instead of a stack trace.
        """
        dashboard.search_text = "Xyzzyville"
        await dashboard.search_location()
        assert dashboard.error_message == NOT_FOUND_MESSAGE
        assert dashboard.search_text == "Xyzzyville"

    @pytest.mark.asyncio
    async def test_blank_search_is_ignored(self, dashboard, provider):
        """Blank search text does nothing.

        Implementation: Searches with whitespace only.
        Passing implies: can_search guards the command.
        """
        dashboard.search_text = "   "
        assert not dashboard.can_search
        await dashboard.search_location()
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_missing_key_message(self, store, dashboard, provider):
        """A missing or rejected key shows the configuration message.

        Implementation: Makes the provider raise ApiKeyError.
        Passing implies: Users are told to set a key.
        """
        provider.error = ApiKeyError("no key")
        billings = await _save(store, "Billings")
        dashboard.selected_location = billings
        await dashboard.wait_for_background()
        assert dashboard.error_message == API_KEY_MESSAGE

    @pytest.mark.asyncio
    async def test_initialize_restores_selection(self, store, state, provider):
        """initialize loads the list and the weather for a location selected at startup.

        Implementation: Seeds the state before creating the screen.
        Passing implies: The default location is shown on launch.
        """
        billings = await _save(store, "Billings")
        await _save(store, "Missoula")
        state.set_selected_location(billings)
        vm = DashboardViewModel(store, state, provider)
        try:
            await vm.initialize()
            assert len(vm.locations) == 2
            assert vm.current_conditions.location_name == "Billings"
        finally:
            vm.dispose()

    @pytest.mark.asyncio
    async def test_initialize_drops_vanished_selection(self, store, state, provider):
        """A selected location that no longer exists is cleared on initialize.

        Implementation: Selects a location, deletes it from the store, then initializes.
        Passing implies: The screen never shows a location that is gone.
        """
        billings = await _save(store, "Billings")
        state.set_selected_location(billings)
        await store.delete_location(billings.id)
        vm = DashboardViewModel(store, state, provider)
        try:
            await vm.initialize()
            assert state.get_selected_location() is None
            assert provider.calls == []
        finally:
            vm.dispose()

    @pytest.mark.asyncio
    async def test_select_location_by_id(self, store, state, dashboard):
        """select_location picks a saved location by id and rejects unknown ids.

        Implementation: Selects a saved id, then a made-up one.
        Passing implies: List clicks map onto the shared selection.
        """
        missoula = await _save(store, "Missoula")
        await dashboard.select_location(missoula.id)
        await dashboard.wait_for_background()
        assert state.get_selected_location().id == missoula.id

        await dashboard.select_location(9999)
        assert dashboard.error_message == "Unknown location id 9999"
        assert state.get_selected_location().id == missoula.id

    @pytest.mark.asyncio
    async def test_set_default_location(self, store, dashboard):
        """set_default_location persists the id and confirms.

        Implementation: Selects Missoula and makes it the default.
        Passing implies: The next start restores Missoula.
        """
        missoula = await _save(store, "Missoula")
        dashboard.selected_location = missoula
        await dashboard.wait_for_background()

        await dashboard.set_default_location()
        assert await store.get_setting(SETTING_DEFAULT_LOCATION_ID) == str(missoula.id)
        assert dashboard.status_message == "Missoula set as default location"
        assert (await store.get_default_location()).id == missoula.id

    @pytest.mark.asyncio
    async def test_toggle_favorite_does_not_reload(self, store, state, dashboard, provider):
        """Toggling favorite updates the record without treating it as a new selection.

        Implementation: Favorites the selected location and counts fetches and notifications.
        Passing implies: Flag changes are cheap and visible immediately.
        """
        billings = await _save(store, "Billings")
        dashboard.selected_location = billings
        await dashboard.wait_for_background()
        names = _recorder(dashboard)

        await dashboard.toggle_favorite()
        await dashboard.wait_for_background()

        assert state.get_selected_location().is_favorite
        assert dashboard.locations[0].is_favorite
        assert names.count("selected_location") == 1
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_delete_selected_location_clears_screens(self, store, state, dashboard, history):
        """Deleting the selected location clears the selection everywhere.

        Implementation: Selects a location with history, then deletes it.
        Passing implies: No screen keeps showing data for a deleted location.
        """
        billings = await _save(store, "Billings")
        await store.save_reading(_reading(billings.id, datetime.now() - timedelta(days=1), 5))
        await history.initialize()
        dashboard.selected_location = billings
        await dashboard.wait_for_background()
        await history.wait_for_background()
        assert history.readings

        await dashboard.delete_location(billings.id)

        assert state.get_selected_location() is None
        assert dashboard.current_conditions is None
        assert dashboard.forecast == []
        assert history.readings == []
        assert dashboard.locations == []


class TestHistory:
    @pytest.mark.asyncio
    async def test_initialize_loads_readings(self, store, state, tmp_path):
        """initialize loads the selected location's readings with a summary.

        Implementation: Stores two readings and initializes a history screen.
        Passing implies: The history screen opens on useful data.
        """
        great_falls = await _save(store, "Great Falls")
        now = datetime.now()
        await store.save_reading(_reading(great_falls.id, now - timedelta(days=2), 10))
        await store.save_reading(_reading(great_falls.id, now - timedelta(days=1), 20))
        state.set_selected_location(great_falls)
        vm = HistoryViewModel(store, state, ReportService(store), export_dir=tmp_path)
        try:
            await vm.initialize()
            assert [r.temperature for r in vm.readings] == [10, 20]
            assert vm.summary.average_temperature == 15
            assert vm.status_message == "Loaded 2 weather records"
        finally:
            vm.dispose()

    @pytest.mark.asyncio
    async def test_empty_range_message(self, store, state, history):
        """An empty range yields the no-data message naming the location.

        Implementation: Initializes history for a location without readings.
        Passing implies: Users learn why the chart is empty.
        """
        billings = await _save(store, "Billings")
        state.set_selected_location(billings)
        await history.initialize()
        assert history.readings == []
        assert history.error_message == "No weather data found for Billings in the selected date range."

    @pytest.mark.asyncio
    async def test_date_change_reloads(self, store, state, history):
        """Narrowing the start date reloads the readings.

        Implementation: Loads 30 days, then moves the start to five days back.
        Passing implies: The date pickers drive the query.
        """
        billings = await _save(store, "Billings")
        now = datetime.now()
        await store.save_reading(_reading(billings.id, now - timedelta(days=10), 1))
        await store.save_reading(_reading(billings.id, now - timedelta(days=1), 2))
        state.set_selected_location(billings)
        await history.initialize()
        assert len(history.readings) == 2

        history.start_date = history.end_date - timedelta(days=5)
        await history.wait_for_background()
        assert [r.temperature for r in history.readings] == [2]

    @pytest.mark.asyncio
    async def test_follows_selection_from_dashboard(self, store, dashboard, history):
        """Selecting another location on the dashboard reloads history for it.

        Implementation: Initializes history, then selects on the dashboard.
        Passing implies: Screens stay consistent without manual refresh.
        """
        missoula = await _save(store, "Missoula")
        await store.save_reading(_reading(missoula.id, datetime.now() - timedelta(days=3), 7))
        await history.initialize()

        dashboard.selected_location = missoula
        await dashboard.wait_for_background()
        await history.wait_for_background()

        assert [r.temperature for r in history.readings] == [7]

    @pytest.mark.asyncio
    async def test_series_follow_unit(self, store, state, history):
        """Chart series are converted to the current unit.

        Implementation: Loads one reading and switches to Fahrenheit.
        Passing implies: Charts match the unit shown elsewhere.
        """
        billings = await _save(store, "Billings")
        stamp = datetime.now() - timedelta(days=1)
        await store.save_reading(_reading(billings.id, stamp, 10))
        state.set_selected_location(billings)
        await history.initialize()

        state.set_unit(TemperatureUnit.FAHRENHEIT)
        series = history.temperature_series()
        assert series[0][0] == stamp
        assert series[0][1] == pytest.approx(50.0)
        assert series[0][2] == pytest.approx(48.2)
        assert history.humidity_series() == [(stamp, 55)]

    @pytest.mark.asyncio
    async def test_export_writes_named_files(self, store, state, history, tmp_path):
        """Exports land in the export directory with the dated report name.

        Implementation: Exports a document and a spreadsheet for a location with readings.
        Passing implies: Users find reports under predictable names.
        """
        great_falls = await _save(store, "Great Falls")
        await store.save_reading(_reading(great_falls.id, datetime.now() - timedelta(days=1), 12))
        state.set_selected_location(great_falls)
        await history.initialize()

        document = await history.export_document()
        spreadsheet = await history.export_spreadsheet()

        stem = f"WeatherReport_Great_Falls_{datetime.now():%Y%m%d}"
        assert document == tmp_path / "exports" / f"{stem}.html"
        assert spreadsheet == tmp_path / "exports" / f"{stem}.csv"
        assert document.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")
        assert "Weather Report" in spreadsheet.read_text(encoding="utf-8")
        assert history.status_message == f"Report saved to: {spreadsheet}"

    @pytest.mark.asyncio
    async def test_export_without_data(self, history, tmp_path):
        """Exporting with nothing loaded reports that there is no data.

        Implementation: Exports from a fresh screen.
        Passing implies: No empty files are written.
        """
        assert await history.export_document(tmp_path) is None
        assert history.error_message == "No data available to export"
        assert list(tmp_path.glob("*.html")) == []

    @pytest.mark.asyncio
    async def test_late_readings_for_old_selection_are_discarded(self, store, state, tmp_path):
        """History fetched for a location the user moved away from never reaches the screen.

        Implementation: Holds the query for one location open, selects another, then releases it.
        Passing implies: The history screen always ends on the latest selection's readings.
        """
        billings = await _save(store, "Billings")
        missoula = await _save(store, "Missoula")
        yesterday = datetime.now() - timedelta(days=1)
        await store.save_reading(_reading(billings.id, yesterday, 1))
        await store.save_reading(_reading(missoula.id, yesterday, 2))
        gated = GatedStore(store)
        vm = HistoryViewModel(gated, state, ReportService(store), export_dir=tmp_path)
        try:
            await vm.initialize()
            gated.gates[billings.id] = asyncio.Event()
            state.set_selected_location(billings)
            await _wait_until(lambda: gated.range_calls == [billings.id])

            state.set_selected_location(missoula)
            gated.gates[billings.id].set()
            await vm.wait_for_background()

            assert [r.location_id for r in vm.readings] == [missoula.id]
            assert gated.range_calls == [billings.id, missoula.id]
            assert vm.status_message == "Loaded 1 weather records"
        finally:
            vm.dispose()

    @pytest.mark.asyncio
    async def test_failed_initialize_blocks_reloads(self, store, state, tmp_path):
        """A screen whose initialize failed does not react to later selections.

        Implementation: Makes listing locations fail, then selects a location through the shared state.
        Passing implies: A broken screen shows its error instead of loading half-initialized.
        """
        billings = await _save(store, "Billings")
        gated = GatedStore(store)
        gated.fail_listing = True
        vm = HistoryViewModel(gated, state, ReportService(store), export_dir=tmp_path)
        try:
            await vm.initialize()
            assert vm.error_message.startswith("Failed to initialize history view")

            state.set_selected_location(billings)
            await vm.wait_for_background()

            assert gated.range_calls == []
            assert vm.readings == []
        finally:
            vm.dispose()
