# ABOUTME: Provider client for the OpenWeatherMap current-weather and 5-day forecast endpoints.
# ABOUTME: Maps raw API payloads into CurrentConditions and one ForecastDay per local day.

import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from weather_dashboard.config import DEFAULT_BASE_URL
from weather_dashboard.errors import ApiKeyError, LocationNotFoundError, ProviderError
from weather_dashboard.models import CurrentConditions, ForecastDay

logger = logging.getLogger(__name__)

FORECAST_DAYS = 5


class ByName(BaseModel):
    """Query the provider by city name."""

    city: str

    def params(self) -> dict[str, Any]:
        return {"q": self.city}


class ByCoords(BaseModel):
    """Query the provider by coordinates."""

    latitude: float
    longitude: float

    def params(self) -> dict[str, Any]:
        return {"lat": self.latitude, "lon": self.longitude}


Query = ByName | ByCoords


# Raw payload shapes. Only `main` is mandatory; everything else falls back to defaults.


class _Coord(BaseModel):
    lat: float = 0.0
    lon: float = 0.0


class _Main(BaseModel):
    temp: float = 0.0
    feels_like: float = 0.0
    humidity: float = 0.0
    pressure: float = 0.0
    temp_min: float = 0.0
    temp_max: float = 0.0


class _Description(BaseModel):
    main: str | None = None
    description: str | None = None
    icon: str | None = None


class _Wind(BaseModel):
    speed: float = 0.0


class _Sys(BaseModel):
    country: str | None = None


class _CurrentPayload(BaseModel):
    name: str | None = None
    coord: _Coord = _Coord()
    main: _Main
    weather: list[_Description] = []
    wind: _Wind = _Wind()
    sys: _Sys = _Sys()


class _ForecastSlot(BaseModel):
    dt: int
    main: _Main
    weather: list[_Description] = []
    wind: _Wind = _Wind()


class _City(BaseModel):
    timezone: int = 0


class _ForecastPayload(BaseModel):
    slots: list[_ForecastSlot] = Field(default=[], alias="list")
    city: _City = _City()


class WeatherProvider:
    """Async client for the weather API. The API key can be swapped at runtime."""

    def __init__(self, client: httpx.AsyncClient, api_key: str | None = None, base_url: str = DEFAULT_BASE_URL):
        self._client = client
        self._api_key = api_key or ""
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def set_api_key(self, api_key: str | None) -> None:
        self._api_key = (api_key or "").strip()

    async def get_current_conditions(self, query: Query) -> CurrentConditions:
        """Fetch current conditions for a city name or coordinates."""
        data = await self._get("weather", query)
        try:
            payload = _CurrentPayload.model_validate(data)
        except ValidationError as e:
            raise ProviderError(f"Malformed current weather payload: {e.error_count()} invalid field(s)") from e
        return map_current_conditions(payload, datetime.now())

    async def get_forecast(self, query: Query) -> list[ForecastDay]:
        """Fetch up to five daily forecasts, one per local day."""
        data = await self._get("forecast", query)
        try:
            payload = _ForecastPayload.model_validate(data)
        except ValidationError as e:
            raise ProviderError(f"Malformed forecast payload: {e.error_count()} invalid field(s)") from e
        return map_forecast(payload)

    async def _get(self, endpoint: str, query: Query) -> Any:
        if not self._api_key:
            raise ApiKeyError("No weather API key configured")
        params = {**query.params(), "appid": self._api_key, "units": "metric"}
        try:
            resp = await self._client.get(self._base_url + endpoint, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("Weather API returned an error", extra={"status_code": status})
            if status == 401:
                raise ApiKeyError("The weather API rejected the API key") from e
            if status == 404:
                raise LocationNotFoundError(f"Location not found: {_describe(query)}") from e
            raise ProviderError(f"Weather API request failed with status {status}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Weather API request failed: {e}") from e
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError("Weather API returned a response that is not JSON") from e


def _describe(query: Query) -> str:
    if isinstance(query, ByName):
        return query.city
    return f"({query.latitude}, {query.longitude})"


def map_current_conditions(payload: _CurrentPayload, timestamp: datetime) -> CurrentConditions:
    """Flatten a current-weather payload into CurrentConditions."""
    first = payload.weather[0] if payload.weather else _Description()
    return CurrentConditions(
        location_name=payload.name or "Unknown",
        country=payload.sys.country or "Unknown",
        latitude=payload.coord.lat,
        longitude=payload.coord.lon,
        temperature=payload.main.temp,
        feels_like=payload.main.feels_like,
        humidity=payload.main.humidity,
        pressure=payload.main.pressure,
        wind_speed=payload.wind.speed,
        description=first.description or "Unknown",
        icon_code=first.icon or "01d",
        timestamp=timestamp,
    )


def map_forecast(payload: _ForecastPayload, days: int = FORECAST_DAYS) -> list[ForecastDay]:
    """Pick the slot nearest local noon for each local date, first `days` dates in order.

    Slots are 3-hourly UTC timestamps; the city's `timezone` offset (seconds) gives local time.
    Ties go to the earlier slot.
    """
    offset = timedelta(seconds=payload.city.timezone)
    by_day: dict[date, tuple[int, _ForecastSlot]] = {}
    for slot in sorted(payload.slots, key=lambda s: s.dt):
        local = datetime.fromtimestamp(slot.dt, tz=UTC) + offset
        distance = abs(local.hour - 12)
        best = by_day.get(local.date())
        if best is None or distance < best[0]:
            by_day[local.date()] = (distance, slot)

    result = []
    for day in sorted(by_day)[:days]:
        slot = by_day[day][1]
        first = slot.weather[0] if slot.weather else _Description()
        result.append(
            ForecastDay(
                date=day,
                temp_max=slot.main.temp_max,
                temp_min=slot.main.temp_min,
                description=first.description or "Unknown",
                icon_code=first.icon or "01d",
                humidity=slot.main.humidity,
                wind_speed=slot.wind.speed,
            )
        )
    return result


def parse_query(text: str) -> Query:
    """Turn user input into a query: "lat,lon" becomes coordinates, anything else a city name."""
    parts = [p.strip() for p in text.split(",")]
    if len(parts) == 2:
        try:
            return ByCoords(latitude=float(parts[0]), longitude=float(parts[1]))
        except ValueError:
            pass
    return ByName(city=text.strip())
