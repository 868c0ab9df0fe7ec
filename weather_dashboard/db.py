# ABOUTME: SQLAlchemy ORM tables, engine factory and schema migrations for the SQLite store.
# ABOUTME: Migrations are an ordered list applied according to SQLite's PRAGMA user_version.

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from sqlalchemy import (
    Boolean,
    Connection,
    DateTime,
    Engine,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    create_engine,
    event,
    insert,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class SavedLocationRow(Base):
    __tablename__ = "saved_locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    country: Mapped[str] = mapped_column(String(100), default="")
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    readings: Mapped[list["WeatherRecordRow"]] = relationship(
        back_populates="location", cascade="all, delete-orphan", passive_deletes=True
    )


class WeatherRecordRow(Base):
    __tablename__ = "weather_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("saved_locations.id", ondelete="CASCADE"), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)
    feels_like: Mapped[float] = mapped_column(Float, default=0.0)
    humidity: Mapped[float] = mapped_column(Float, default=0.0)
    pressure: Mapped[float] = mapped_column(Float, default=0.0)
    wind_speed: Mapped[float] = mapped_column(Float, default=0.0)
    description: Mapped[str] = mapped_column(String(200), default="")
    icon_code: Mapped[str] = mapped_column(String(10), default="")

    location: Mapped[SavedLocationRow] = relationship(back_populates="readings")

    __table_args__ = (Index("ix_weather_records_location_timestamp", "location_id", "timestamp"),)


class UserSettingRow(Base):
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(String(500), default="")
    last_modified: Mapped[datetime] = mapped_column(DateTime, nullable=False)


def create_sqlite_engine(database_path: Path | str | None) -> Engine:
    """Create an engine for a SQLite file, or an in-memory database when the path is None or ":memory:".

    Foreign keys are enabled on every connection so readings cascade with their location.
    """
    if database_path is None or str(database_path) == ":memory:":
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        path = Path(database_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def _initial_schema(conn: Connection) -> None:
    Base.metadata.create_all(conn)
    now = datetime.now()
    conn.execute(
        insert(UserSettingRow),
        [
            {"key": "TemperatureUnit", "value": "Celsius", "last_modified": now},
            {"key": "RefreshInterval", "value": "30", "last_modified": now},
        ],
    )


# Append new migrations; never reorder or edit applied ones.
MIGRATIONS: list[Callable[[Connection], None]] = [
    _initial_schema,
]


def schema_version(conn: Connection) -> int:
    return int(conn.exec_driver_sql("PRAGMA user_version").scalar() or 0)


def migrate(engine: Engine) -> int:
    """Apply pending migrations in order and return the resulting schema version."""
    with engine.begin() as conn:
        current = schema_version(conn)
        if current > len(MIGRATIONS):
            raise RuntimeError(f"Database schema version {current} is newer than this application supports")
        for version, step in enumerate(MIGRATIONS[current:], start=current + 1):
            logger.info("Applying schema migration %d", version)
            step(conn)
            conn.execute(text(f"PRAGMA user_version = {version}"))
        return len(MIGRATIONS)
