# ABOUTME: Process-wide application state shared by every screen: selected location and temperature unit.
# ABOUTME: Notifies subscribers synchronously on change through explicit observer lists.

import logging
from collections.abc import Callable
from typing import Any

from weather_dashboard.models import Location, TemperatureUnit, same_location

logger = logging.getLogger(__name__)


class Event:
    """An explicit observer list.

    `notify` walks a snapshot of the observers, so callbacks may register or unregister
    while a notification is in progress. Each observer runs in isolation: one that raises
    is logged and the remaining observers are still called.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._observers: list[Callable[..., Any]] = []

    def __len__(self) -> int:
        return len(self._observers)

    def register(self, callback: Callable[..., Any]) -> Callable[..., Any]:
        self._observers.append(callback)
        return callback

    def unregister(self, callback: Callable[..., Any]) -> None:
        try:
            self._observers.remove(callback)
        except ValueError:
            pass

    def notify(self, *args: Any) -> None:
        for callback in list(self._observers):
            try:
                callback(*args)
            except Exception:
                logger.exception("Observer of %s failed", self.name)


class Subscription:
    """Handle returned by AppState.subscribe. Unsubscribing twice is harmless."""

    def __init__(self, registrations: list[tuple[Event, Callable[..., Any]]]) -> None:
        self._registrations = registrations

    @property
    def active(self) -> bool:
        return bool(self._registrations)

    def unsubscribe(self) -> None:
        for event, callback in self._registrations:
            event.unregister(callback)
        self._registrations = []

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class AppState:
    """Single source of truth for cross-screen UI state.

    One instance is built at startup and passed to every view-model. It performs no I/O
    and belongs to the event loop thread; it is not safe to touch from worker threads.
    """

    def __init__(self, location: Location | None = None, unit: TemperatureUnit = TemperatureUnit.CELSIUS) -> None:
        self._location = location
        self._unit = unit
        self.location_changed = Event("location_changed")
        self.unit_changed = Event("unit_changed")

    @property
    def selected_location(self) -> Location | None:
        return self._location

    @property
    def unit(self) -> TemperatureUnit:
        return self._unit

    def get_selected_location(self) -> Location | None:
        return self._location

    def set_selected_location(self, location: Location | None) -> bool:
        """Select a location. Returns True and notifies observers only if the id changed."""
        if same_location(self._location, location):
            return False
        self._location = location
        logger.debug("Selected location changed", extra={"location_id": location.id if location else None})
        self.location_changed.notify(location)
        return True

    def refresh_selected_location(self, location: Location) -> bool:
        """Swap in a newer record of the already selected location (e.g. a changed favorite flag).

        The selection itself does not change, so no observer is notified. Returns False if
        `location` is not the selected location.
        """
        if self._location is None or not same_location(self._location, location):
            return False
        self._location = location
        return True

    def get_unit(self) -> TemperatureUnit:
        return self._unit

    def set_unit(self, unit: TemperatureUnit) -> bool:
        """Change the temperature unit. Returns True and notifies observers only on an actual change."""
        if unit == self._unit:
            return False
        self._unit = unit
        logger.debug("Temperature unit changed", extra={"unit": unit.value})
        self.unit_changed.notify(unit)
        return True

    def subscribe(
        self,
        on_location_changed: Callable[[Location | None], Any] | None = None,
        on_unit_changed: Callable[[TemperatureUnit], Any] | None = None,
    ) -> Subscription:
        registrations = []
        if on_location_changed is not None:
            registrations.append((self.location_changed, self.location_changed.register(on_location_changed)))
        if on_unit_changed is not None:
            registrations.append((self.unit_changed, self.unit_changed.register(on_unit_changed)))
        return Subscription(registrations)
