# ABOUTME: Console rendering of view-model state for the command line front end.
# ABOUTME: Plain typer.echo output; temperatures follow the current display unit.

from collections.abc import Iterable
from typing import Any

import typer

from weather_dashboard.models import Location, format_temperature
from weather_dashboard.viewmodels import DashboardViewModel, HistoryViewModel


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def echo_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)


def echo_status(message: str) -> None:
    if message:
        typer.secho(message, fg=typer.colors.GREEN)


def render_dashboard(vm: DashboardViewModel) -> None:
    conditions = vm.current_conditions
    location = vm.selected_location
    if conditions is None or location is None:
        typer.echo("No weather loaded.")
        return

    echo_heading(f"{location.name}, {location.country}")
    echo_key_values(
        [
            ("Temperature", vm.formatted_temperature),
            ("Feels like", vm.formatted_feels_like),
            ("Conditions", conditions.description),
            ("Humidity", f"{conditions.humidity:.0f}%"),
            ("Pressure", f"{conditions.pressure:.0f} hPa"),
            ("Wind", f"{conditions.wind_speed:.1f} m/s"),
        ]
    )
    if vm.last_updated is not None:
        typer.echo(f"Last updated: {vm.last_updated:%H:%M:%S}")

    typer.echo()
    echo_heading("Forecast")
    if not vm.forecast:
        typer.echo("No forecast available.")
    for day in vm.forecast:
        typer.echo(
            f"  {day.date:%a %d %b}  {vm.format_temperature(day.temp_max)} / "
            f"{vm.format_temperature(day.temp_min)}  {day.description}"
        )


def render_locations(locations: list[Location], selected: Location | None) -> None:
    echo_heading("Saved Locations")
    if not locations:
        typer.echo("No saved locations.")
        return
    for location in locations:
        marker = ">" if selected is not None and selected.id == location.id else " "
        star = "*" if location.is_favorite else " "
        typer.echo(f"{marker}{star} {location.name}, {location.country} ({location.latitude:.2f}, {location.longitude:.2f})")


def render_history(vm: HistoryViewModel) -> None:
    location = vm.selected_location
    title = location.name if location is not None else "History"
    echo_heading(f"{title}: {vm.start_date:%Y-%m-%d} to {vm.end_date:%Y-%m-%d}")
    summary = vm.summary
    unit = vm.temperature_unit
    echo_key_values(
        [
            ("Records", summary.count),
            ("Average temperature", format_temperature(summary.average_temperature, unit)),
            ("Maximum temperature", format_temperature(summary.max_temperature, unit)),
            ("Minimum temperature", format_temperature(summary.min_temperature, unit)),
            ("Average humidity", f"{summary.average_humidity:.1f}%"),
        ]
    )
    if not vm.readings:
        return
    typer.echo()
    for reading in vm.readings:
        typer.echo(
            f"  {reading.timestamp:%Y-%m-%d %H:%M}  {format_temperature(reading.temperature, unit)}  "
            f"{reading.humidity:.0f}%  {reading.description}"
        )
