# ABOUTME: Typer command line front end standing in for the dashboard and history screens.
# ABOUTME: Each command bootstraps the app, drives one view-model action, renders it and shuts down.

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional, TypeVar

import typer

from weather_dashboard.config import get_config
from weather_dashboard.deps import AppContext
from weather_dashboard.errors import StartupError
from weather_dashboard.logging_config import configure_logging
from weather_dashboard.models import Location, TemperatureUnit
from weather_dashboard.render import echo_error, echo_status, render_dashboard, render_history, render_locations
from weather_dashboard.startup import bootstrap, create_dashboard, create_history
from weather_dashboard.store import SETTING_API_KEY
from weather_dashboard.viewmodels import ViewModelBase

T = TypeVar("T")


class ReportKind(str, Enum):
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"


app = typer.Typer(
    help="Current weather, forecasts and recorded history for your saved locations.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (defaults to LOG_LEVEL env or INFO)."),
) -> None:
    """Entry point for the CLI."""
    configure_logging((log_level or get_config().log_level).upper())


def _run(action: Callable[[AppContext], Awaitable[T]]) -> T:
    """Bootstrap, run one action against the context, and always close it."""

    async def runner() -> T:
        try:
            ctx = await bootstrap()
        except StartupError as e:
            echo_error(str(e))
            raise typer.Exit(code=1) from e
        try:
            return await action(ctx)
        finally:
            await ctx.aclose()

    return asyncio.run(runner())


def _fail_on_error(vm: ViewModelBase) -> None:
    if vm.error_message:
        echo_error(vm.error_message)
        raise typer.Exit(code=1)


async def _require_location(ctx: AppContext, name: str) -> Location:
    location = await ctx.store.get_location_by_name(name)
    if location is None:
        echo_error(f"No saved location named {name!r}")
        raise typer.Exit(code=1)
    return location


@app.command("current")
def current_command(
    city: Optional[str] = typer.Argument(None, help='City name or "lat,lon" to search for and select.'),
) -> None:
    """Show current conditions and the forecast for a city or the selected location."""

    async def action(ctx: AppContext) -> None:
        vm = create_dashboard(ctx)
        try:
            if city:
                vm.search_text = city
                await vm.search_location()
            else:
                await vm.initialize()
                if vm.selected_location is None:
                    echo_error("No location selected. Pass a city name to search for one.")
                    raise typer.Exit(code=1)
            await vm.wait_for_background()
            _fail_on_error(vm)
            render_dashboard(vm)
        finally:
            vm.dispose()

    _run(action)


@app.command("locations")
def locations_command() -> None:
    """List saved locations. Favorites are starred and the selected one is marked."""

    async def action(ctx: AppContext) -> None:
        render_locations(await ctx.store.get_all_locations(), ctx.state.get_selected_location())

    _run(action)


async def _load_history(ctx: AppContext, location_name: Optional[str], days: int):
    vm = create_history(ctx)
    if location_name:
        vm.selected_location = await _require_location(ctx, location_name)
    now = datetime.now()
    vm.start_date = now - timedelta(days=days)
    vm.end_date = now
    await vm.initialize()
    if vm.selected_location is None:
        echo_error("No location selected. Use --location to pick one.")
        raise typer.Exit(code=1)
    return vm


@app.command("history")
def history_command(
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Saved location name."),
    days: int = typer.Option(30, "--days", "-d", min=1, help="Number of days to look back."),
) -> None:
    """Show recorded readings and summary statistics."""

    async def action(ctx: AppContext) -> None:
        vm = await _load_history(ctx, location, days)
        try:
            _fail_on_error(vm)
            render_history(vm)
        finally:
            vm.dispose()

    _run(action)


@app.command("export")
def export_command(
    kind: ReportKind = typer.Argument(..., case_sensitive=False, help="document (HTML) or spreadsheet (CSV)."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Saved location name."),
    days: int = typer.Option(30, "--days", "-d", min=1, help="Number of days to include."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", file_okay=False, help="Directory to write to."),
) -> None:
    """Export recorded readings as a report file."""

    async def action(ctx: AppContext) -> None:
        vm = await _load_history(ctx, location, days)
        try:
            _fail_on_error(vm)
            if kind is ReportKind.DOCUMENT:
                await vm.export_document(output_dir)
            else:
                await vm.export_spreadsheet(output_dir)
            _fail_on_error(vm)
            echo_status(vm.status_message)
        finally:
            vm.dispose()

    _run(action)


@app.command("set-key")
def set_key_command(key: str = typer.Argument(..., help="OpenWeatherMap API key.")) -> None:
    """Store the weather API key."""

    async def action(ctx: AppContext) -> None:
        await ctx.store.save_setting(SETTING_API_KEY, key.strip())
        echo_status("API key saved")

    _run(action)


@app.command("unit")
def unit_command(
    unit: TemperatureUnit = typer.Argument(..., case_sensitive=False, help="Celsius or Fahrenheit."),
) -> None:
    """Set the display temperature unit."""

    async def action(ctx: AppContext) -> None:
        vm = create_dashboard(ctx)
        try:
            if vm.temperature_unit is not unit:
                await vm.toggle_temperature_unit()
            _fail_on_error(vm)
            echo_status(f"Temperature unit set to {vm.temperature_unit.value}")
        finally:
            vm.dispose()

    _run(action)


async def _dashboard_for(ctx: AppContext, name: str):
    """Select the named location before the screen exists, as startup does."""
    ctx.state.set_selected_location(await _require_location(ctx, name))
    return create_dashboard(ctx)


@app.command("default")
def default_command(name: str = typer.Argument(..., help="Saved location name.")) -> None:
    """Make a saved location the one selected at startup."""

    async def action(ctx: AppContext) -> None:
        vm = await _dashboard_for(ctx, name)
        try:
            await vm.set_default_location()
            _fail_on_error(vm)
            echo_status(vm.status_message)
        finally:
            vm.dispose()

    _run(action)


@app.command("favorite")
def favorite_command(name: str = typer.Argument(..., help="Saved location name.")) -> None:
    """Toggle the favorite flag of a saved location."""

    async def action(ctx: AppContext) -> None:
        vm = await _dashboard_for(ctx, name)
        try:
            await vm.toggle_favorite()
            _fail_on_error(vm)
            location = vm.selected_location
            verb = "added to" if location.is_favorite else "removed from"
            echo_status(f"{location.name} {verb} favorites")
        finally:
            vm.dispose()

    _run(action)


@app.command("delete")
def delete_command(name: str = typer.Argument(..., help="Saved location name.")) -> None:
    """Delete a saved location and all of its recorded readings."""

    async def action(ctx: AppContext) -> None:
        vm = create_dashboard(ctx)
        try:
            location = await _require_location(ctx, name)
            await vm.delete_location(location.id)
            _fail_on_error(vm)
            echo_status(f"Deleted {location.name}")
        finally:
            vm.dispose()

    _run(action)


if __name__ == "__main__":
    app()
