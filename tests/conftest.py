# ABOUTME: Shared test fixtures for the weather dashboard test suite.
# ABOUTME: Provides a throwaway SQLite store, a fresh AppState and isolated configuration.

import pytest

from weather_dashboard.config import AppConfig, get_config
from weather_dashboard.state import AppState
from weather_dashboard.store import open_store


@pytest.fixture
def store(tmp_path):
    """A migrated store backed by a file in the test's temp directory."""
    s = open_store(tmp_path / "weather.db")
    yield s
    s.close()


@pytest.fixture
def state():
    return AppState()


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        database_path=tmp_path / "weather.db",
        api_key="test-key",
        export_dir=tmp_path / "exports",
    )


@pytest.fixture(autouse=True)
def _isolated_config():
    """Never let a cached configuration leak between tests."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()
