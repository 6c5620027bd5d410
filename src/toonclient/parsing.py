"""Parsing of Toon API status and consumption payloads."""

from __future__ import annotations

import logging
from typing import Any

from .models import TemperatureState

_LOGGER = logging.getLogger(__name__)


def centi_to_degrees(value: int | float) -> float:
    """Convert the API's hundredths of a degree to degrees, one decimal."""
    return round(value / 100, 1)


def degrees_to_centi(value: int | float) -> int:
    """Convert degrees to the API's hundredths of a degree."""
    return int(round(value * 100))


def parse_status(data: dict[str, Any] | None) -> dict[str, Any]:
    """Extract snapshot values from a /status response.

    Only values present in the payload are returned, so a partial response
    never overwrites a known value with None.

    Args:
        data: The raw JSON body of the status endpoint.

    Returns:
        Mapping of snapshot field name to new value.
    """
    values: dict[str, Any] = {}
    if not data:
        _LOGGER.debug("No status data available")
        return values

    power_usage = data.get("powerUsage") or {}
    if power_usage.get("value") is not None:
        values["measure_power"] = power_usage["value"]
    if power_usage.get("dayUsage") is not None:
        values["meter_power"] = power_usage["dayUsage"] / 1000  # Wh -> kWh

    gas_usage = data.get("gasUsage") or {}
    if gas_usage.get("dayUsage") is not None:
        values["meter_gas"] = gas_usage["dayUsage"] / 1000

    thermostat_info = data.get("thermostatInfo") or {}
    # Newer displays report currentDisplayTemp, older ones only currentTemp.
    current = thermostat_info.get("currentDisplayTemp", thermostat_info.get("currentTemp"))
    if current is not None:
        values["measure_temperature"] = centi_to_degrees(current)
    if thermostat_info.get("currentSetpoint") is not None:
        values["target_temperature"] = centi_to_degrees(thermostat_info["currentSetpoint"])
    if thermostat_info.get("activeState") is not None:
        state = TemperatureState.from_id(thermostat_info["activeState"])
        if state is not None:
            values["temperature_state"] = state.label
        else:
            _LOGGER.debug("Unknown activeState %s", thermostat_info["activeState"])

    return values


def parse_preset_temperatures(data: dict[str, Any] | None) -> dict[str, float]:
    """Extract the preset temperature per state from a /status response."""
    presets: dict[str, float] = {}
    if not data:
        return presets

    thermostat_states = data.get("thermostatStates") or {}
    for entry in thermostat_states.get("state", []):
        state = TemperatureState.from_id(entry.get("id"))
        if state is None or state is TemperatureState.NONE:
            continue
        if entry.get("tempValue") is not None:
            presets[state.label] = centi_to_degrees(entry["tempValue"])
    return presets


def parse_latest_flow(data: dict[str, Any] | None, divisor: float = 1) -> float | None:
    """Return the most recent hourly value of a consumption flow response.

    Negative readings are reported as 0.
    """
    if not data or not data.get("hours"):
        return None

    latest = max(data["hours"], key=lambda entry: entry.get("timestamp", 0))
    value = latest.get("value")
    if value is None:
        return None
    return max(value, 0) / divisor
