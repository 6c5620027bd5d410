"""Toon API Client."""

from .api import ToonClient
from .auth import AbstractAuth, OAuth
from .events import (
    DeviceOffline,
    DeviceOnline,
    Event,
    EventBus,
    Initialized,
    TokensRefreshed,
    ValueChanged,
)
from .exceptions import (
    ToonAbortedError,
    ToonApiError,
    ToonAuthError,
    ToonConnectionError,
    ToonDeviceOfflineError,
    ToonError,
    ToonForbiddenError,
    ToonMissingArgumentError,
    ToonNotFoundError,
    ToonRateLimitError,
    ToonServerInternalError,
    ToonTokenError,
    ToonValidationError,
)
from .models import (
    Agreement,
    ConnectivityState,
    Credentials,
    TemperatureState,
    ThermostatStatus,
)

__all__ = [
    "AbstractAuth",
    "Agreement",
    "ConnectivityState",
    "Credentials",
    "DeviceOffline",
    "DeviceOnline",
    "Event",
    "EventBus",
    "Initialized",
    "OAuth",
    "TemperatureState",
    "ThermostatStatus",
    "TokensRefreshed",
    "ToonAbortedError",
    "ToonApiError",
    "ToonAuthError",
    "ToonClient",
    "ToonConnectionError",
    "ToonDeviceOfflineError",
    "ToonError",
    "ToonForbiddenError",
    "ToonMissingArgumentError",
    "ToonNotFoundError",
    "ToonRateLimitError",
    "ToonServerInternalError",
    "ToonTokenError",
    "ToonValidationError",
    "ValueChanged",
]
