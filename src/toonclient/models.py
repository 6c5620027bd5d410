"""Data models for Toon API objects."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any


class TemperatureState(Enum):
    """Thermostat presets, valued with the API's activeState ids."""

    COMFORT = 0
    HOME = 1
    SLEEP = 2
    AWAY = 3
    NONE = -1

    @classmethod
    def from_name(cls, name: str) -> "TemperatureState":
        """Look up a state by its lowercase name (e.g. 'away')."""
        try:
            return cls[name.upper()]
        except KeyError:
            valid = [state.name.lower() for state in cls]
            raise ValueError(
                f"Unknown temperature state '{name}'. Must be one of {valid}."
            ) from None

    @classmethod
    def from_id(cls, state_id: int) -> "TemperatureState | None":
        for state in cls:
            if state.value == state_id:
                return state
        return None

    @property
    def label(self) -> str:
        return self.name.lower()


class ConnectivityState(Enum):
    """What the client believes about the thermostat's reachability."""

    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Credentials:
    """OAuth2 token pair."""

    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None

    @classmethod
    def from_token_response(
        cls, data: dict[str, Any], previous: "Credentials | None" = None
    ) -> "Credentials":
        """Factory method to create credentials from a token endpoint response.

        Args:
            data: JSON body returned by the token endpoint.
            previous: Credentials being replaced. Their refresh token is kept
                when the response does not rotate it.
        """
        refresh_token = data.get("refresh_token")
        if not refresh_token and previous is not None:
            refresh_token = previous.refresh_token

        expires_at = None
        if data.get("expires_in") is not None:
            expires_at = time.time() + float(data["expires_in"])

        return cls(
            access_token=data["access_token"],
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credentials":
        """Restore credentials previously stored with as_dict()."""
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=data.get("expires_at"),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }

    def is_expiring(self, margin: float) -> bool:
        """Return True if the expiry time is known and within `margin` seconds."""
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at - margin


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of one API call.

    The Authorization header is not part of the descriptor; it is attached
    when the request is dispatched so a retry always carries the newest token.
    """

    method: str
    path: str
    body: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    allow_retry: bool = True

    def without_retry(self) -> "RequestDescriptor":
        """Return a copy that must not be recovered again."""
        return replace(self, allow_retry=False)


@dataclass
class Agreement:
    """A Toon display the account has access to."""

    agreement_id: str
    display_common_name: str = ""
    display_address: str = ""
    display_hardware_version: str = ""
    display_software_version: str = ""
    heating_type: str = ""
    is_toon_solar: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Agreement":
        """Factory method to create an agreement from API response."""
        return cls(
            agreement_id=str(data.get("agreementId", "")),
            display_common_name=data.get("displayCommonName", ""),
            display_address=data.get("displayAddress", ""),
            display_hardware_version=data.get("displayHardwareVersion", ""),
            display_software_version=data.get("displaySoftwareVersion", ""),
            heating_type=data.get("heatingType", ""),
            is_toon_solar=bool(data.get("isToonSolar", False)),
            raw=data,
        )


# Snapshot fields that are diffed by the status poller.
TRACKED_FIELDS = (
    "measure_temperature",
    "target_temperature",
    "measure_power",
    "meter_gas",
    "meter_power",
    "temperature_state",
)


@dataclass
class ThermostatStatus:
    """Last known values of a thermostat. None means not observed yet."""

    measure_temperature: float | None = None
    target_temperature: float | None = None
    measure_power: float | None = None
    meter_gas: float | None = None
    meter_power: float | None = None
    temperature_state: str | None = None
    connectivity: ConnectivityState = ConnectivityState.UNKNOWN

    def copy(self) -> "ThermostatStatus":
        return replace(self)

    def as_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["connectivity"] = self.connectivity.value
        return data
