# ABOUTME: Exception hierarchy for provider, store, report and startup failures.
# ABOUTME: Maps exceptions to the user-facing messages screens display.


class WeatherDashboardError(Exception):
    """Base class for all application errors."""


class ProviderError(WeatherDashboardError):
    """The weather provider failed: network error, non-2xx response or malformed payload."""


class LocationNotFoundError(ProviderError):
    """The provider does not know the requested city."""


class ApiKeyError(ProviderError):
    """The API key is missing or was rejected by the provider."""


class StoreError(WeatherDashboardError):
    """A persistent store operation failed."""


class NoDataError(WeatherDashboardError):
    """No readings exist for the requested location and range."""


class StartupError(WeatherDashboardError):
    """The store could not be opened or migrated. Startup must abort."""


NOT_FOUND_MESSAGE = "Location not found. Please check the spelling and try again"
API_KEY_MESSAGE = "Weather API key is missing or invalid. Set it with the set-key command"
NO_DATA_MESSAGE = "No data available for the selected period"


def user_message(exc: BaseException, fallback: str) -> str:
    """Convert an exception caught at a screen boundary into the message shown to the user."""
    if isinstance(exc, LocationNotFoundError):
        return NOT_FOUND_MESSAGE
    if isinstance(exc, ApiKeyError):
        return API_KEY_MESSAGE
    if isinstance(exc, NoDataError):
        return NO_DATA_MESSAGE
    detail = str(exc) or exc.__class__.__name__
    return f"{fallback}: {detail}"
