# ABOUTME: Report generation for a location's readings over a date range.
# ABOUTME: Renders a standalone HTML document with Jinja2 and a CSV spreadsheet.

import csv
import io
from datetime import datetime

from jinja2 import Environment, select_autoescape

from weather_dashboard.errors import NoDataError
from weather_dashboard.models import Location, WeatherReading, summarize
from weather_dashboard.store import WeatherStore

DOCUMENT_ROW_LIMIT = 50

_DOCUMENT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Weather Report - {{ location.name }}</title>
<style>
body { font-family: sans-serif; font-size: 11pt; margin: 2cm; }
h1 { color: #1565c0; }
table { border-collapse: collapse; margin-bottom: 1em; }
th { background: #eeeeee; border-bottom: 2px solid #1e88e5; }
th, td { padding: 5px 10px; border-bottom: 1px solid #e0e0e0; text-align: left; }
.note { font-size: 10pt; font-style: italic; color: #757575; }
</style>
</head>
<body>
<h1>Weather Report - {{ location.name }}</h1>
<p>Period: {{ start | day }} - {{ end | day }}</p>
<p>Location: {{ location.name }}, {{ location.country }}</p>
<p>Generated: {{ generated | stamp }}</p>

<h2>Summary Statistics</h2>
<table>
<tr><td>Average Temperature:</td><td>{{ "%.1f" | format(summary.average_temperature) }}°C</td></tr>
<tr><td>Maximum Temperature:</td><td>{{ "%.1f" | format(summary.max_temperature) }}°C</td></tr>
<tr><td>Minimum Temperature:</td><td>{{ "%.1f" | format(summary.min_temperature) }}°C</td></tr>
<tr><td>Average Humidity:</td><td>{{ "%.1f" | format(summary.average_humidity) }}%</td></tr>
</table>

<h2>Detailed Records</h2>
<table>
<tr><th>Date/Time</th><th>Temp</th><th>Humidity</th><th>Wind</th><th>Conditions</th></tr>
{% for r in rows %}
<tr>
<td>{{ r.timestamp | stamp }}</td>
<td>{{ "%.1f" | format(r.temperature) }}°C</td>
<td>{{ "%.0f" | format(r.humidity) }}%</td>
<td>{{ "%.1f" | format(r.wind_speed) }} m/s</td>
<td>{{ r.description }}</td>
</tr>
{% endfor %}
</table>
{% if total > rows | length %}
<p class="note">Note: Showing most recent {{ rows | length }} of {{ total }} records</p>
{% endif %}
</body>
</html>
"""


def _format_day(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value:%Y}"


def _format_stamp(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value:%Y %H:%M}"


_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))
_env.filters["day"] = _format_day
_env.filters["stamp"] = _format_stamp
_document = _env.from_string(_DOCUMENT_TEMPLATE)


class ReportService:
    """Builds exportable reports from the readings in the store."""

    def __init__(self, store: WeatherStore) -> None:
        self._store = store

    async def _load(self, location_id: int, start: datetime, end: datetime) -> tuple[Location, list[WeatherReading]]:
        location = await self._store.get_location_by_id(location_id)
        if location is None:
            raise NoDataError(f"Unknown location id {location_id}")
        readings = await self._store.get_readings_in_range(location_id, start, end)
        if not readings:
            raise NoDataError(f"No readings for {location.name} between {start:%Y-%m-%d} and {end:%Y-%m-%d}")
        return location, readings

    async def generate_document(self, location_id: int, start: datetime, end: datetime) -> bytes:
        """HTML report with summary statistics and the most recent readings, newest first."""
        location, readings = await self._load(location_id, start, end)
        rows = sorted(readings, key=lambda r: r.timestamp, reverse=True)[:DOCUMENT_ROW_LIMIT]
        html = _document.render(
            location=location,
            start=start,
            end=end,
            generated=datetime.now(),
            summary=summarize(readings),
            rows=rows,
            total=len(readings),
        )
        return html.encode("utf-8")

    async def generate_spreadsheet(self, location_id: int, start: datetime, end: datetime) -> bytes:
        """CSV with a title block, summary statistics and every reading, oldest first."""
        location, readings = await self._load(location_id, start, end)
        summary = summarize(readings)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["Weather Report"])
        writer.writerow([f"Location: {location.name}, {location.country}"])
        writer.writerow([f"Period: {_format_day(start)} - {_format_day(end)}"])
        writer.writerow([])
        writer.writerow(["Summary Statistics"])
        writer.writerow(["Average Temperature (°C)", f"{summary.average_temperature:.1f}"])
        writer.writerow(["Maximum Temperature (°C)", f"{summary.max_temperature:.1f}"])
        writer.writerow(["Minimum Temperature (°C)", f"{summary.min_temperature:.1f}"])
        writer.writerow(["Average Humidity (%)", f"{summary.average_humidity:.1f}"])
        writer.writerow([])
        writer.writerow(
            [
                "Date/Time",
                "Temperature (°C)",
                "Feels Like (°C)",
                "Humidity (%)",
                "Pressure (hPa)",
                "Wind Speed (m/s)",
                "Description",
            ]
        )
        for r in readings:
            writer.writerow(
                [
                    r.timestamp.isoformat(sep=" ", timespec="minutes"),
                    f"{r.temperature:.2f}",
                    f"{r.feels_like:.2f}",
                    f"{r.humidity:.2f}",
                    f"{r.pressure:.2f}",
                    f"{r.wind_speed:.2f}",
                    r.description,
                ]
            )
        return buffer.getvalue().encode("utf-8")
