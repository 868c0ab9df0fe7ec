# ABOUTME: Pydantic BaseModels for locations, readings, provider results and the temperature unit.
# ABOUTME: Defines the value types shared by the store, provider client, view-models and reports.

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class TemperatureUnit(str, Enum):
    """Global display unit. Stored values are always Celsius."""

    CELSIUS = "Celsius"
    FAHRENHEIT = "Fahrenheit"

    @classmethod
    def parse(cls, value: str | None) -> "TemperatureUnit":
        """Parse a persisted setting value, falling back to Celsius for anything unrecognised."""
        if value is None:
            return cls.CELSIUS
        for unit in cls:
            if unit.value.lower() == value.strip().lower():
                return unit
        return cls.CELSIUS

    @property
    def symbol(self) -> str:
        return "°C" if self is TemperatureUnit.CELSIUS else "°F"

    def toggled(self) -> "TemperatureUnit":
        return TemperatureUnit.FAHRENHEIT if self is TemperatureUnit.CELSIUS else TemperatureUnit.CELSIUS


def convert_temperature(celsius: float, unit: TemperatureUnit) -> float:
    """Convert a Celsius value into the given display unit."""
    if unit is TemperatureUnit.FAHRENHEIT:
        return celsius * 9 / 5 + 32
    return celsius


def format_temperature(celsius: float | None, unit: TemperatureUnit, with_unit: bool = True) -> str:
    """Format a Celsius value for display, e.g. "12.3°C" or "54.1°F"."""
    if celsius is None:
        return "--°"
    value = convert_temperature(celsius, unit)
    if with_unit:
        return f"{value:.1f}{unit.symbol}"
    return f"{value:.1f}°"


class NewLocation(BaseModel):
    """A location that has not been persisted yet."""

    name: str
    latitude: float
    longitude: float
    country: str = ""
    is_favorite: bool = False


class Location(BaseModel):
    """A saved location as stored in the database.

    Records are immutable; the favorite flag only changes through the store,
    which hands back a fresh record.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    latitude: float
    longitude: float
    country: str = ""
    is_favorite: bool = False
    created_at: datetime


def same_location(a: Location | None, b: Location | None) -> bool:
    """Compare two locations by identity. None only equals None."""
    if a is None or b is None:
        return a is None and b is None
    return a.id == b.id


class CurrentConditions(BaseModel):
    """Current weather for one place as returned by the provider."""

    location_name: str
    country: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    temperature: float
    feels_like: float
    humidity: float
    pressure: float
    wind_speed: float
    description: str = "Unknown"
    icon_code: str = "01d"
    timestamp: datetime


class ForecastDay(BaseModel):
    """One day of forecast, taken from the slot nearest local noon."""

    date: date
    temp_max: float
    temp_min: float
    description: str = "Unknown"
    icon_code: str = "01d"
    humidity: float = 0.0
    wind_speed: float = 0.0


class WeatherReading(BaseModel):
    """A historical reading appended every time conditions are fetched."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int | None = None
    location_id: int
    timestamp: datetime
    temperature: float
    feels_like: float
    humidity: float
    pressure: float
    wind_speed: float
    description: str = ""
    icon_code: str = ""

    @classmethod
    def from_conditions(cls, location_id: int, conditions: CurrentConditions, timestamp: datetime) -> "WeatherReading":
        return cls(
            location_id=location_id,
            timestamp=timestamp,
            temperature=conditions.temperature,
            feels_like=conditions.feels_like,
            humidity=conditions.humidity,
            pressure=conditions.pressure,
            wind_speed=conditions.wind_speed,
            description=conditions.description,
            icon_code=conditions.icon_code,
        )


class ReadingSummary(BaseModel):
    """Summary statistics over a set of readings, in Celsius."""

    count: int = 0
    average_temperature: float = 0.0
    max_temperature: float = 0.0
    min_temperature: float = 0.0
    average_humidity: float = 0.0


def summarize(readings: list[WeatherReading]) -> ReadingSummary:
    """Compute summary statistics. An empty list yields all zeros."""
    if not readings:
        return ReadingSummary()
    temperatures = [r.temperature for r in readings]
    return ReadingSummary(
        count=len(readings),
        average_temperature=sum(temperatures) / len(temperatures),
        max_temperature=max(temperatures),
        min_temperature=min(temperatures),
        average_humidity=sum(r.humidity for r in readings) / len(readings),
    )
