# ABOUTME: Async persistent store for settings, saved locations and historical readings.
# ABOUTME: Each operation runs in its own short SQLAlchemy session on a worker thread.

import asyncio
import functools
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from weather_dashboard.db import SavedLocationRow, UserSettingRow, WeatherRecordRow, create_sqlite_engine, migrate
from weather_dashboard.errors import StoreError
from weather_dashboard.models import Location, NewLocation, WeatherReading

logger = logging.getLogger(__name__)

T = TypeVar("T")

SETTING_API_KEY = "ApiKey"
SETTING_TEMPERATURE_UNIT = "TemperatureUnit"
SETTING_DEFAULT_LOCATION_ID = "DefaultLocationId"
SETTING_REFRESH_INTERVAL = "RefreshInterval"


class WeatherStore:
    """CRUD over the SQLite database.

    Methods are coroutines; the blocking database work is pushed to a worker thread so
    the event loop stays responsive. No session outlives a single call.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    @property
    def engine(self) -> Engine:
        return self._engine

    async def _run(self, work: Callable[[Session], T]) -> T:
        def call() -> T:
            try:
                with self._sessions.begin() as session:
                    return work(session)
            except SQLAlchemyError as e:
                raise StoreError(f"Database operation failed: {e}") from e

        return await asyncio.to_thread(call)

    def close(self) -> None:
        self._engine.dispose()

    # Settings

    async def get_setting(self, key: str, default: str | None = None) -> str | None:
        """Return a persisted setting value, or default if the key is absent."""

        def work(session: Session) -> str | None:
            row = session.scalar(select(UserSettingRow).where(UserSettingRow.key == key))
            return row.value if row is not None else default

        return await self._run(work)

    async def save_setting(self, key: str, value: str) -> None:
        """Insert or update a setting."""

        def work(session: Session) -> None:
            row = session.scalar(select(UserSettingRow).where(UserSettingRow.key == key))
            if row is None:
                session.add(UserSettingRow(key=key, value=value, last_modified=datetime.now()))
            else:
                row.value = value
                row.last_modified = datetime.now()

        await self._run(work)
        logger.debug("Saved setting %s", key)

    # Locations

    async def get_all_locations(self) -> list[Location]:
        """All saved locations, favorites first, then alphabetical by name."""

        def work(session: Session) -> list[Location]:
            rows = session.scalars(
                select(SavedLocationRow).order_by(
                    SavedLocationRow.is_favorite.desc(), func.lower(SavedLocationRow.name), SavedLocationRow.id
                )
            )
            return [Location.model_validate(row) for row in rows]

        return await self._run(work)

    async def get_location_by_id(self, location_id: int) -> Location | None:
        def work(session: Session) -> Location | None:
            row = session.get(SavedLocationRow, location_id)
            return Location.model_validate(row) if row is not None else None

        return await self._run(work)

    async def get_location_by_name(self, name: str) -> Location | None:
        """Case-insensitive lookup by display name."""
        return await self._run(functools.partial(_find_by_name, name=name))

    async def add_location(self, location: NewLocation) -> Location:
        """Persist a location, or return the existing record if one with the same name exists."""

        def work(session: Session) -> Location:
            existing = _find_by_name(session, location.name)
            if existing is not None:
                return existing
            row = SavedLocationRow(
                name=location.name,
                latitude=location.latitude,
                longitude=location.longitude,
                country=location.country,
                is_favorite=location.is_favorite,
                created_at=datetime.now(),
            )
            session.add(row)
            session.flush()
            return Location.model_validate(row)

        saved = await self._run(work)
        logger.info("Location saved", extra={"location_id": saved.id, "location": saved.name})
        return saved

    async def delete_location(self, location_id: int) -> None:
        """Delete a location and, through the foreign key cascade, all of its readings."""

        def work(session: Session) -> bool:
            row = session.get(SavedLocationRow, location_id)
            if row is None:
                return False
            session.delete(row)
            return True

        if await self._run(work):
            logger.info("Location deleted", extra={"location_id": location_id})

    async def set_favorite(self, location_id: int, is_favorite: bool) -> Location | None:
        """Change the favorite flag and return the updated record."""

        def work(session: Session) -> Location | None:
            row = session.get(SavedLocationRow, location_id)
            if row is None:
                return None
            row.is_favorite = is_favorite
            session.flush()
            return Location.model_validate(row)

        return await self._run(work)

    async def get_default_location(self) -> Location | None:
        """Resolve the stored default location id, else fall back to the first favorite, then the oldest."""
        raw_id = await self.get_setting(SETTING_DEFAULT_LOCATION_ID)

        def work(session: Session) -> Location | None:
            if raw_id is not None:
                try:
                    row = session.get(SavedLocationRow, int(raw_id))
                except ValueError:
                    row = None
                if row is not None:
                    return Location.model_validate(row)
            row = session.scalars(
                select(SavedLocationRow)
                .order_by(SavedLocationRow.is_favorite.desc(), SavedLocationRow.created_at, SavedLocationRow.id)
                .limit(1)
            ).first()
            return Location.model_validate(row) if row is not None else None

        return await self._run(work)

    # Readings

    async def save_reading(self, reading: WeatherReading) -> WeatherReading:
        """Append a reading. Readings are never updated afterwards."""

        def work(session: Session) -> WeatherReading:
            row = WeatherRecordRow(**reading.model_dump(exclude={"id"}))
            session.add(row)
            session.flush()
            return WeatherReading.model_validate(row)

        return await self._run(work)

    async def get_readings_in_range(self, location_id: int, start: datetime, end: datetime) -> list[WeatherReading]:
        """Readings with start <= timestamp <= end, oldest first."""

        def work(session: Session) -> list[WeatherReading]:
            rows = session.scalars(
                select(WeatherRecordRow)
                .where(
                    WeatherRecordRow.location_id == location_id,
                    WeatherRecordRow.timestamp >= start,
                    WeatherRecordRow.timestamp <= end,
                )
                .order_by(WeatherRecordRow.timestamp, WeatherRecordRow.id)
            )
            return [WeatherReading.model_validate(row) for row in rows]

        return await self._run(work)


def _find_by_name(session: Session, name: str) -> Location | None:
    row = session.scalars(
        select(SavedLocationRow).where(func.lower(SavedLocationRow.name) == name.strip().lower()).limit(1)
    ).first()
    return Location.model_validate(row) if row is not None else None


def open_store(database_path: Path | str | None) -> WeatherStore:
    """Open the database and apply pending migrations."""
    engine = create_sqlite_engine(database_path)
    try:
        version = migrate(engine)
    except Exception:
        engine.dispose()
        raise
    logger.info("Store opened at schema version %d", version, extra={"path": database_path})
    return WeatherStore(engine)
